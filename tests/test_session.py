from __future__ import annotations

import asyncio

import numpy as np
import pytest

from movielens_mf.config import AppConfig
from movielens_mf.errors import MissingSelection, ModelNotReady, TrainingFailure
from movielens_mf.loader import DataConfig
from movielens_mf.session import Session
from movielens_mf.train import Completed, Failed, TrainConfig


def _offline_config(**training) -> AppConfig:
    params = {"epochs": 2, "batch_size": 64, "learning_rate": 0.01, "device": "cpu"}
    params.update(training)
    return AppConfig(data=DataConfig(offline=True), training=TrainConfig(**params), latent_dim=4, seed=7)


def test_session_lifecycle() -> None:
    session = Session(_offline_config(), rng=np.random.default_rng(0))
    assert session.status == "Loading data..."
    assert not session.ready

    dataset = asyncio.run(session.load_dataset())

    assert dataset is not None
    assert session.status == "Data loaded! Populating dropdowns..."
    assert session.user_options()[0] == (1, "User 1")
    assert len(session.user_options()) == 50
    assert session.movie_options()[0] == (1, "1. Toy Story")
    assert session.predict_message(1, 1) == ModelNotReady().args[0]

    result = asyncio.run(session.train_model())

    assert isinstance(result, Completed)
    assert session.last_result is result
    assert session.ready
    assert session.progress == 1.0
    assert session.status == "Model training completed! Ready for predictions."

    outcome = session.predict(1, 2)
    assert outcome.prediction.title == "GoldenEye"
    assert 1.0 <= outcome.display.score <= 5.0
    assert session.predict_message(1, 2).startswith('User 1 would rate "GoldenEye": ')
    assert session.predict_message("", 2) == "Please select both a user and a movie."


def test_training_without_dataset_fails() -> None:
    session = Session(_offline_config())

    result = asyncio.run(session.train_model())

    assert isinstance(result, Failed)
    assert session.status == "Training failed: no dataset loaded"
    assert session.user_options() == []
    assert session.movie_options() == []


def test_training_failure_is_reported_in_status() -> None:
    session = Session(_offline_config(batch_size=0))
    asyncio.run(session.load_dataset())

    result = asyncio.run(session.train_model())

    assert isinstance(result, Failed)
    assert session.status.startswith("Training failed: ")
    assert not session.ready
    assert not session.is_training


def test_progress_is_reported_per_epoch() -> None:
    session = Session(_offline_config(epochs=4))
    asyncio.run(session.load_dataset())
    seen: list[float] = []

    original = session._on_progress

    def record(event) -> None:
        original(event)
        seen.append(session.progress)

    session._on_progress = record  # type: ignore[method-assign]
    asyncio.run(session.train_model())

    assert seen == pytest.approx([0.25, 0.5, 0.75, 1.0])


def test_concurrent_training_is_rejected() -> None:
    session = Session(_offline_config(epochs=3))

    async def scenario():
        await session.load_dataset()
        first = session.start_training()
        # Slot is claimed before the task has run at all.
        assert session.is_training
        with pytest.raises(TrainingFailure, match="Training failed: already running"):
            await session.train_model()
        status_while_busy = session.status
        return await first, status_while_busy

    first, status_while_busy = asyncio.run(scenario())

    assert isinstance(first, Completed)
    assert session.last_result is first
    assert not status_while_busy.startswith("Training failed")
    assert not session.is_training


def test_missing_selection_leaves_session_untouched() -> None:
    session = Session(_offline_config(), rng=np.random.default_rng(1))
    asyncio.run(session.load_dataset())

    for stage in ("untrained", "trained"):
        before = (session.model, session.status, session.progress, session.last_result, session.dataset)

        with pytest.raises(MissingSelection):
            session.predict(None, 1)
        assert session.predict_message(" ", "") == "Please select both a user and a movie."

        after = (session.model, session.status, session.progress, session.last_result, session.dataset)
        assert all(a is b for a, b in zip(before, after)), stage

        if stage == "untrained":
            asyncio.run(session.train_model())
            assert session.ready


def test_loader_errors_are_reported_in_status(monkeypatch) -> None:
    async def boom(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr("movielens_mf.session.load_dataset", boom)
    session = Session(_offline_config())

    assert asyncio.run(session.load_dataset()) is None
    assert session.status == "Error: disk on fire"
