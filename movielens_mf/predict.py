from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import torch

from .data import Movie
from .errors import MissingSelection, ModelNotReady, UnknownSelection
from .model import MatrixFactorization


logger = logging.getLogger(__name__)

MIN_RATING = 1.0
MAX_RATING = 5.0
MAX_STARS = 5
FULL_STAR = "★"
EMPTY_STAR = "☆"


@dataclass(frozen=True)
class PredictionResult:
    user_id: int
    movie_id: int
    title: str
    raw_score: float


@dataclass(frozen=True)
class DisplayResult:
    user_id: Optional[int]
    title: str
    score: float
    score_text: str
    full_stars: int
    empty_stars: int
    stars: str

    def as_text(self) -> str:
        return f"{self.score_text} / {MAX_RATING:.1f}"


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _coerce_id(value: Any, *, name: str, upper: int) -> int:
    try:
        parsed = int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise UnknownSelection(f"Invalid {name}: {value!r}") from exc
    if isinstance(value, float) and not value.is_integer():
        raise UnknownSelection(f"Invalid {name}: {value!r}")
    if not 1 <= parsed <= int(upper):
        raise UnknownSelection(f"Unknown {name}: {parsed} (expected 1..{upper})")
    return parsed


def _title_for(movies: Sequence[Movie], movie_id: int) -> str:
    for movie in movies:
        if movie.id == movie_id:
            return movie.title
    raise UnknownSelection(f"Unknown movie id: {movie_id}")


def score_pair(model: MatrixFactorization, user_id: int, movie_id: int) -> float:
    """Run the model on a single (user, movie) pair and return the raw score."""
    device = next(model.parameters()).device
    model.eval()
    with torch.no_grad():
        users = torch.tensor([int(user_id)], dtype=torch.long, device=device)
        movies = torch.tensor([int(movie_id)], dtype=torch.long, device=device)
        try:
            prediction = model(users, movies)
            score = float(prediction.item())
        finally:
            del users, movies
    return score


def predict(
    model: Optional[MatrixFactorization],
    user_id: Any,
    movie_id: Any,
    *,
    movies: Sequence[Movie],
    num_users: int,
) -> PredictionResult:
    """Predict the rating `user_id` would give `movie_id`.

    Raises `MissingSelection` if either id is empty, `ModelNotReady` if the
    model has not finished training, `UnknownSelection` for ids outside the
    loaded dataset.
    """
    if _is_empty(user_id) or _is_empty(movie_id):
        raise MissingSelection()
    if model is None:
        raise ModelNotReady()

    uid = _coerce_id(user_id, name="user id", upper=num_users)
    mid = _coerce_id(movie_id, name="movie id", upper=len(movies))
    title = _title_for(movies, mid)

    raw = score_pair(model, uid, mid)
    logger.debug("Prediction user=%d movie=%d raw=%.4f", uid, mid, raw)
    return PredictionResult(user_id=uid, movie_id=mid, title=title, raw_score=raw)


def clamp_rating(score: float) -> float:
    if math.isnan(score):
        return MIN_RATING
    return max(MIN_RATING, min(MAX_RATING, float(score)))


def format_prediction(
    raw_score: float,
    *,
    title: str = "",
    user_id: Optional[int] = None,
) -> DisplayResult:
    """Clamp a raw score into [1, 5] and build its star visualization."""
    clamped = clamp_rating(raw_score)
    full = int(math.floor(clamped))
    empty = MAX_STARS - full
    return DisplayResult(
        user_id=user_id,
        title=title,
        score=round(clamped, 1),
        score_text=f"{clamped:.1f}",
        full_stars=full,
        empty_stars=empty,
        stars=FULL_STAR * full + EMPTY_STAR * empty,
    )
