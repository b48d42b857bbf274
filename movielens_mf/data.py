from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

import numpy as np
import pandas as pd


logger = logging.getLogger(__name__)

# Malformed numeric fields become NaN instead of raising.
ParsedId = Union[int, float]

_TITLE_YEAR_SUFFIX_RE = re.compile(r"\s*\(\d{4}\)$")


@dataclass(frozen=True)
class Movie:
    id: ParsedId
    title: str


@dataclass(frozen=True)
class Rating:
    user_id: ParsedId
    movie_id: ParsedId
    rating: float


def _non_blank_lines(text: str) -> list[str]:
    text = "" if text is None else str(text)
    return [line for line in text.split("\n") if line.strip()]


def _parse_int(field: str) -> ParsedId:
    """Parse a leading integer the way a lenient reader would; NaN if none."""
    match = re.match(r"\s*([+-]?\d+)", field)
    if not match:
        return math.nan
    return int(match.group(1))


def _parse_float(field: str) -> float:
    match = re.match(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)", field)
    if not match:
        return math.nan
    return float(match.group(1))


def strip_year_suffix(title: str) -> str:
    """Remove a trailing " (YYYY)" from a MovieLens title."""
    return _TITLE_YEAR_SUFFIX_RE.sub("", title.strip())


def parse_movies(text: str) -> list[Movie]:
    """Parse the pipe-delimited movie catalog (MovieLens-100K `u.item`).

    Lines with fewer than two fields are skipped. Input order is preserved.
    """
    movies: list[Movie] = []
    skipped = 0
    for line in _non_blank_lines(text):
        parts = line.split("|")
        if len(parts) < 2:
            skipped += 1
            continue
        movies.append(Movie(id=_parse_int(parts[0]), title=strip_year_suffix(parts[1])))

    if skipped:
        logger.debug("Skipped %d catalog lines with fewer than 2 fields", skipped)
    logger.info("Parsed %d movies", len(movies))
    return movies


def parse_ratings(text: str) -> list[Rating]:
    """Parse the tab-delimited rating list (MovieLens-100K `u.data`).

    Fields: userId, movieId, rating, timestamp. The timestamp is discarded.
    """
    ratings: list[Rating] = []
    skipped = 0
    for line in _non_blank_lines(text):
        parts = line.split("\t")
        if len(parts) < 3:
            skipped += 1
            continue
        ratings.append(
            Rating(
                user_id=_parse_int(parts[0]),
                movie_id=_parse_int(parts[1]),
                rating=_parse_float(parts[2]),
            )
        )

    if skipped:
        logger.debug("Skipped %d rating lines with fewer than 3 fields", skipped)
    logger.info("Parsed %d ratings", len(ratings))
    return ratings


def _is_nan(value: ParsedId) -> bool:
    return isinstance(value, float) and math.isnan(value)


def is_valid_rating(r: Rating, num_users: int, num_movies: int) -> bool:
    """True when the rating has finite fields and ids inside the embedding bounds."""
    if _is_nan(r.user_id) or _is_nan(r.movie_id) or not math.isfinite(r.rating):
        return False
    return 1 <= int(r.user_id) <= int(num_users) and 1 <= int(r.movie_id) <= int(num_movies)


def validate_ratings(
    ratings: Sequence[Rating],
    num_users: int,
    num_movies: int,
) -> tuple[list[Rating], int]:
    """Drop ratings that would index outside the embedding tables.

    Returns (kept, dropped_count).
    """
    kept = [r for r in ratings if is_valid_rating(r, num_users, num_movies)]
    dropped = len(ratings) - len(kept)
    if dropped:
        logger.warning("Dropped %d ratings with NaN fields or out-of-range ids", dropped)
    return kept, dropped


def max_user_id(ratings: Iterable[Rating]) -> int:
    """Largest finite user id, 0 for an empty sequence."""
    ids = [int(r.user_id) for r in ratings if not _is_nan(r.user_id)]
    return max(ids) if ids else 0


def ratings_frame(ratings: Sequence[Rating]) -> pd.DataFrame:
    """Columnar view of the ratings, ready to be turned into tensors."""
    return pd.DataFrame(
        {
            "userId": np.asarray([r.user_id for r in ratings], dtype=np.int64),
            "movieId": np.asarray([r.movie_id for r in ratings], dtype=np.int64),
            "rating": np.asarray([r.rating for r in ratings], dtype=np.float32),
        }
    )
