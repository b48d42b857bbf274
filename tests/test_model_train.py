from __future__ import annotations

import math
import warnings

import pandas as pd
import pytest
import torch

from movielens_mf.data import Rating
from movielens_mf.model import MatrixFactorization, build_model
from movielens_mf.predict import score_pair
from movielens_mf.train import (
    Completed,
    Failed,
    ProgressEvent,
    TrainConfig,
    split_ratings,
    train,
    training_tensors,
)


CPU_CFG = TrainConfig(epochs=5, batch_size=4, learning_rate=0.05, device="cpu")


def test_embedding_tables_have_room_for_one_based_ids() -> None:
    model = build_model(num_users=7, num_movies=20, latent_dim=10)

    assert model.user_embed.weight.shape == (8, 10)
    assert model.movie_embed.weight.shape == (21, 10)


def test_forward_is_dot_product_of_embeddings() -> None:
    model = MatrixFactorization(3, 4, latent_dim=5)
    users = torch.tensor([1, 3], dtype=torch.long)
    movies = torch.tensor([[4], [2]], dtype=torch.long)

    out = model(users, movies)

    expected = (model.user_embed.weight[[1, 3]] * model.movie_embed.weight[[4, 2]]).sum(dim=1, keepdim=True)
    assert out.shape == (2, 1)
    torch.testing.assert_close(out, expected)


def test_build_model_rejects_empty_dimensions() -> None:
    with pytest.raises(ValueError):
        build_model(0, 3)
    with pytest.raises(ValueError):
        build_model(3, 3, latent_dim=0)


def test_split_holds_out_trailing_fraction() -> None:
    df = pd.DataFrame({"userId": range(20), "movieId": range(20), "rating": [3.0] * 20})

    df_train, df_val = split_ratings(df, 0.1)

    assert list(df_val["userId"]) == [18, 19]
    assert list(df_train["userId"]) == list(range(18))


def test_split_without_enough_rows_keeps_everything_for_training() -> None:
    df = pd.DataFrame({"userId": [1], "movieId": [1], "rating": [3.0]})

    df_train, df_val = split_ratings(df, 0.1)

    assert len(df_train) == 1
    assert df_val.empty


def test_end_to_end_tiny_dataset(tiny_ratings) -> None:
    model = build_model(3, 3, latent_dim=4)
    events: list[ProgressEvent] = []

    result = train(model, tiny_ratings, CPU_CFG, listener=events.append)

    assert isinstance(result, Completed)
    assert math.isfinite(result.final_loss)
    assert len(result.history["loss"]) == 5
    assert len(result.history["val_loss"]) == 5
    assert [e.fraction for e in events] == pytest.approx([0.2, 0.4, 0.6, 0.8, 1.0])
    assert events[-1].describe().startswith("Training epoch 5/5 - Loss: ")

    for u in (1, 2, 3):
        for m in (1, 2, 3):
            assert math.isfinite(score_pair(model, u, m))


def test_training_reduces_loss(tiny_ratings) -> None:
    torch.manual_seed(0)
    model = build_model(3, 3, latent_dim=8)
    cfg = TrainConfig(epochs=60, batch_size=9, learning_rate=0.05, validation_split=0.0, device="cpu")

    result = train(model, tiny_ratings, cfg)

    assert isinstance(result, Completed)
    assert result.history["loss"][-1] < result.history["loss"][0]
    assert result.history["val_loss"] == []


def test_listener_errors_do_not_stop_training(tiny_ratings) -> None:
    def listener(event: ProgressEvent) -> None:
        raise RuntimeError("display is gone")

    result = train(build_model(3, 3), tiny_ratings, CPU_CFG, listener=listener)

    assert isinstance(result, Completed)


def test_empty_ratings_fail_without_raising() -> None:
    result = train(build_model(3, 3), [], CPU_CFG)

    assert isinstance(result, Failed)
    assert "empty" in result.reason


def test_out_of_range_ids_fail_without_raising() -> None:
    result = train(build_model(2, 2), [Rating(1, 1, 4.0), Rating(9, 1, 3.0)], CPU_CFG)

    assert isinstance(result, Failed)


def test_training_tensors_are_released_when_the_body_fails(tiny_ratings) -> None:
    with pytest.raises(RuntimeError, match="optimizer blew up"):
        with training_tensors(tiny_ratings, 0.1, torch.device("cpu")) as tensors:
            assert len(tensors.train) == 8
            assert tensors.val is not None and len(tensors.val) == 1
            raise RuntimeError("optimizer blew up")

    assert tensors.train is None
    assert tensors.val is None


def test_tensor_building_does_not_warn_about_read_only_arrays(tiny_ratings) -> None:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        with training_tensors(tiny_ratings, 0.0, torch.device("cpu")) as tensors:
            users, movies, ratings_t = tensors.train.tensors

    assert not [w for w in caught if "not writable" in str(w.message)]
    assert users.dtype == torch.long and movies.dtype == torch.long
    assert ratings_t.shape == (9, 1)
