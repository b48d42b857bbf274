from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Sequence, Union

import pandas as pd
import torch
from sklearn import model_selection
from torch.utils.data import DataLoader, TensorDataset

from .data import Rating, ratings_frame
from .model import MatrixFactorization
from .utils import device_from_str


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainConfig:
    epochs: int = 8
    batch_size: int = 128
    learning_rate: float = 1e-3
    validation_split: float = 0.1
    shuffle: bool = True
    random_state: int = 42
    device: str | None = None


@dataclass(frozen=True)
class ProgressEvent:
    epoch: int
    total_epochs: int
    loss: float
    val_loss: float | None = None

    @property
    def fraction(self) -> float:
        return (self.epoch + 1) / self.total_epochs

    def describe(self) -> str:
        return f"Training epoch {self.epoch + 1}/{self.total_epochs} - Loss: {self.loss:.4f}"


ProgressListener = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class Completed:
    final_loss: float
    history: dict[str, list[float]] = field(default_factory=dict)


@dataclass(frozen=True)
class Failed:
    reason: str


TrainingResult = Union[Completed, Failed]


@dataclass
class _TrainingTensors:
    train: TensorDataset
    val: Optional[TensorDataset]


def split_ratings(df: pd.DataFrame, validation_split: float) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Hold out the trailing `validation_split` fraction of rows.

    Rows keep their input order; shuffling happens per epoch on the training
    part only, so the held-out set is identical across epochs.
    """
    if validation_split <= 0.0 or len(df) < 2:
        return df, df.iloc[0:0]

    df_train, df_val = model_selection.train_test_split(
        df,
        test_size=float(validation_split),
        shuffle=False,
    )
    return df_train, df_val


def _to_tensor_dataset(df: pd.DataFrame) -> TensorDataset:
    return TensorDataset(
        torch.tensor(df["userId"].to_numpy(), dtype=torch.long),
        torch.tensor(df["movieId"].to_numpy(), dtype=torch.long),
        torch.tensor(df["rating"].to_numpy(), dtype=torch.float32).view(-1, 1),
    )


@contextmanager
def training_tensors(
    ratings: Sequence[Rating],
    validation_split: float,
    device: torch.device,
) -> Iterator[_TrainingTensors]:
    """Build the train/validation tensors and release them on exit, even on error."""
    df = ratings_frame(ratings)
    df_train, df_val = split_ratings(df, validation_split)
    tensors = _TrainingTensors(
        train=_to_tensor_dataset(df_train),
        val=_to_tensor_dataset(df_val) if len(df_val) else None,
    )
    try:
        yield tensors
    finally:
        tensors.train = None  # type: ignore[assignment]
        tensors.val = None
        del df, df_train, df_val
        if device.type == "cuda":
            torch.cuda.empty_cache()


def _notify(listener: ProgressListener | None, event: ProgressEvent) -> None:
    if listener is None:
        return
    try:
        listener(event)
    except Exception:
        logger.exception("Progress listener raised; training continues")


def _evaluate(
    model: MatrixFactorization,
    loader: DataLoader,
    loss_fn: torch.nn.Module,
    device: torch.device,
) -> float:
    model.eval()
    total = 0.0
    n = 0
    with torch.no_grad():
        for users, movies, ratings_t in loader:
            users = users.to(device)
            movies = movies.to(device)
            ratings_t = ratings_t.to(device)
            loss = loss_fn(model(users, movies), ratings_t)
            bs = int(users.shape[0])
            total += float(loss.item()) * bs
            n += bs
    model.train()
    return total / max(1, n)


def fit(
    model: MatrixFactorization,
    ratings: Sequence[Rating],
    cfg: TrainConfig,
    listener: ProgressListener | None = None,
) -> Completed:
    """Optimize MSE between predicted and actual ratings with Adam.

    Raises on any engine failure; `train` wraps this into a `TrainingResult`.
    """
    if not ratings:
        raise ValueError("cannot train on an empty rating list")
    if int(cfg.epochs) <= 0:
        raise ValueError(f"epochs must be > 0, got {cfg.epochs}")
    if int(cfg.batch_size) <= 0:
        raise ValueError(f"batch_size must be > 0, got {cfg.batch_size}")

    torch_device = device_from_str(cfg.device)
    model.to(torch_device)

    optimizer = torch.optim.Adam(model.parameters(), lr=float(cfg.learning_rate))
    loss_fn = torch.nn.MSELoss()

    history: dict[str, list[float]] = {"loss": [], "val_loss": []}

    with training_tensors(ratings, float(cfg.validation_split), torch_device) as tensors:
        generator = torch.Generator().manual_seed(int(cfg.random_state))
        train_loader = DataLoader(
            tensors.train,
            batch_size=int(cfg.batch_size),
            shuffle=bool(cfg.shuffle),
            generator=generator,
            num_workers=0,
        )
        val_loader = (
            DataLoader(tensors.val, batch_size=int(cfg.batch_size), shuffle=False, num_workers=0)
            if tensors.val is not None
            else None
        )

        logger.info(
            "Training on device=%s epochs=%d batch_size=%d train=%d val=%d",
            torch_device,
            int(cfg.epochs),
            int(cfg.batch_size),
            len(tensors.train),
            0 if tensors.val is None else len(tensors.val),
        )

        model.train()
        for epoch in range(int(cfg.epochs)):
            total_loss = 0.0
            n = 0
            for users, movies, ratings_t in train_loader:
                users = users.to(torch_device)
                movies = movies.to(torch_device)
                ratings_t = ratings_t.to(torch_device)

                preds = model(users, movies)
                loss = loss_fn(preds, ratings_t)
                optimizer.zero_grad(set_to_none=True)
                loss.backward()
                optimizer.step()

                bs = int(users.shape[0])
                total_loss += float(loss.item()) * bs
                n += bs

            train_loss = total_loss / max(1, n)
            val_loss = (
                _evaluate(model, val_loader, loss_fn, torch_device) if val_loader is not None else None
            )
            history["loss"].append(train_loss)
            if val_loss is not None:
                history["val_loss"].append(val_loss)

            if val_loss is None:
                logger.info("epoch=%d loss=%.4f", epoch + 1, train_loss)
            else:
                logger.info("epoch=%d loss=%.4f val_loss=%.4f", epoch + 1, train_loss, val_loss)

            _notify(
                listener,
                ProgressEvent(epoch=epoch, total_epochs=int(cfg.epochs), loss=train_loss, val_loss=val_loss),
            )

    model.eval()
    final_loss = history["loss"][-1]
    if not math.isfinite(final_loss):
        raise FloatingPointError(f"final loss is not finite ({final_loss})")
    logger.info("Training completed. Final loss: %.4f", final_loss)
    return Completed(final_loss=float(final_loss), history=history)


def train(
    model: MatrixFactorization,
    ratings: Sequence[Rating],
    cfg: TrainConfig | None = None,
    listener: ProgressListener | None = None,
) -> TrainingResult:
    """Train `model` in place and report how it ended.

    Returns `Completed(final_loss)` or `Failed(reason)`; never raises.
    """
    cfg = cfg or TrainConfig()
    try:
        return fit(model, ratings, cfg, listener)
    except Exception as exc:
        logger.exception("Training error")
        return Failed(reason=str(exc) or type(exc).__name__)

