"""Per-session state: the loaded dataset and the (eventually) trained model.

`Session` is the only thing presentation code talks to. It runs the pipeline
loader -> model builder -> trainer once, keeps a human-readable status line up
to date, and answers predictions once training has completed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from .config import AppConfig
from .errors import RecommenderError, TrainingFailure
from .loader import Dataset, Fetcher, load_dataset
from .model import MatrixFactorization, build_model
from .predict import DisplayResult, PredictionResult, format_prediction, predict
from .train import Completed, Failed, ProgressEvent, TrainingResult, train
from .utils import seed_everything


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionPrediction:
    prediction: PredictionResult
    display: DisplayResult


class Session:
    """Owns one dataset and at most one trained model."""

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        fetcher: Fetcher | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self._fetcher = fetcher
        self._rng = rng
        self.dataset: Optional[Dataset] = None
        self.model: Optional[MatrixFactorization] = None
        self.last_result: Optional[TrainingResult] = None
        self._status = "Loading data..."
        self._progress = 0.0
        self._training = False

    @property
    def status(self) -> str:
        return self._status

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def is_training(self) -> bool:
        return self._training

    @property
    def ready(self) -> bool:
        return self.model is not None

    def _set_status(self, message: str) -> None:
        self._status = message
        logger.info("Status: %s", message)

    async def load_dataset(self) -> Optional[Dataset]:
        try:
            dataset = await load_dataset(self.config.data, fetcher=self._fetcher, rng=self._rng)
        except Exception as exc:
            logger.exception("Initialization error")
            self._set_status(f"Error: {exc}")
            return None

        self.dataset = dataset
        self._set_status("Data loaded! Populating dropdowns...")
        return dataset

    def _on_progress(self, event: ProgressEvent) -> None:
        # Runs on the training thread; plain attribute writes only.
        self._progress = event.fraction
        self._set_status(event.describe())

    def _claim_training(self) -> None:
        # Synchronous so a second caller is rejected before the first run yields.
        if self._training:
            raise TrainingFailure("already running")
        self._training = True
        self.model = None
        self._progress = 0.0

    async def _train_claimed(self) -> TrainingResult:
        try:
            if self.dataset is None:
                result: TrainingResult = Failed(reason="no dataset loaded")
                self._set_status(str(TrainingFailure(result.reason)))
            else:
                result = await self._run_training(self.dataset)
        finally:
            self._training = False

        self.last_result = result
        return result

    async def train_model(self) -> TrainingResult:
        """Build and train a fresh model; the result is also kept in `last_result`.

        Raises `TrainingFailure("already running")` while another run is in
        flight; the status line keeps reporting that run.
        """
        self._claim_training()
        return await self._train_claimed()

    def start_training(self) -> asyncio.Task[TrainingResult]:
        """Claim the training slot now and run `train_model` as a background task."""
        self._claim_training()
        return asyncio.create_task(self._train_claimed())

    async def _run_training(self, dataset: Dataset) -> TrainingResult:
        self._set_status("Creating model architecture...")
        if self.config.seed is not None:
            seed_everything(int(self.config.seed))

        try:
            model = build_model(dataset.num_users, dataset.num_movies, self.config.latent_dim)
        except Exception as exc:
            logger.exception("Training error")
            self._set_status(str(TrainingFailure(str(exc))))
            return Failed(reason=str(exc))

        self._set_status("Model compiled. Starting training...")
        result = await asyncio.to_thread(
            train,
            model,
            dataset.ratings,
            self.config.training,
            self._on_progress,
        )

        if isinstance(result, Completed):
            self.model = model
            self._progress = 1.0
            self._set_status("Model training completed! Ready for predictions.")
        else:
            self._set_status(str(TrainingFailure(result.reason)))
        return result

    def predict(self, user_id: Any, movie_id: Any) -> SessionPrediction:
        """Predict and format a rating; raises the `RecommenderError` subclasses of `predict`."""
        dataset = self.dataset
        result = predict(
            self.model,
            user_id,
            movie_id,
            movies=dataset.movies if dataset is not None else [],
            num_users=dataset.num_users if dataset is not None else 0,
        )
        display = format_prediction(result.raw_score, title=result.title, user_id=result.user_id)
        return SessionPrediction(prediction=result, display=display)

    def predict_message(self, user_id: Any, movie_id: Any) -> str:
        """Prediction rendered as a single line of text, or the error message."""
        try:
            outcome = self.predict(user_id, movie_id)
        except RecommenderError as exc:
            return str(exc)
        except Exception as exc:
            logger.exception("Prediction error")
            return f"Prediction failed: {exc}"

        d = outcome.display
        return f'User {d.user_id} would rate "{d.title}": {d.stars} {d.as_text()}'

    def user_options(self) -> list[tuple[int, str]]:
        if self.dataset is None:
            return []
        return [(i, f"User {i}") for i in range(1, self.dataset.num_users + 1)]

    def movie_options(self) -> list[tuple[int, str]]:
        if self.dataset is None:
            return []
        return [(m.id, f"{m.id}. {m.title}") for m in self.dataset.movies if isinstance(m.id, int)]
