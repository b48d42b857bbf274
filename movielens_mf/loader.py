"""Dataset loading: remote MovieLens-100K files with a synthetic fallback.

Retrieval is an ordered list of equivalent locations per resource. The first
location that answers wins; every failure is logged and the next location is
tried. When a resource is exhausted the loader fabricates a small synthetic
dataset instead, so `load_dataset` always returns something trainable.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Literal, Optional, Sequence

import numpy as np
import requests

from .data import Movie, Rating, max_user_id, parse_movies, parse_ratings, validate_ratings
from .errors import RetrievalFailure


logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[str]]
DatasetSource = Literal["remote", "synthetic"]

_BASE_URLS = (
    "https://raw.githubusercontent.com/dryjins/RecSys-LLMs/main/week3/ml-100k",
    "https://raw.githubusercontent.com/dryjins/RecSys-LLMs/refs/heads/main/week3/ml-100k",
    "https://raw.githubusercontent.com/dryjins/RecSys-LLMs/master/week3/ml-100k",
)
DEFAULT_MOVIE_SOURCES: tuple[str, ...] = tuple(f"{base}/u.item" for base in _BASE_URLS)
DEFAULT_RATING_SOURCES: tuple[str, ...] = tuple(f"{base}/u.data" for base in _BASE_URLS)

# First 20 movies of MovieLens-100K, titles already stripped of the year.
SAMPLE_TITLES: tuple[str, ...] = (
    "Toy Story",
    "GoldenEye",
    "Four Rooms",
    "Get Shorty",
    "Copycat",
    "Shanghai Triad",
    "Twelve Monkeys",
    "Babe",
    "Dead Man Walking",
    "Richard III",
    "Seven",
    "Usual Suspects",
    "Mighty Aphrodite",
    "Postman, The",
    "Mr. Holland's Opus",
    "French Twist",
    "From Dusk Till Dawn",
    "White Balloon, The",
    "Antonia's Line",
    "Angels and Insects",
)
SYNTHETIC_USERS = 50
SYNTHETIC_MIN_RATINGS = 5
SYNTHETIC_MAX_RATINGS = 15


@dataclass(frozen=True)
class DataConfig:
    movie_sources: tuple[str, ...] = DEFAULT_MOVIE_SOURCES
    rating_sources: tuple[str, ...] = DEFAULT_RATING_SOURCES
    request_timeout: float = 10.0
    offline: bool = False


@dataclass(frozen=True)
class Dataset:
    movies: list[Movie] = field(repr=False)
    ratings: list[Rating] = field(repr=False)
    num_users: int
    num_movies: int
    source: DatasetSource = "remote"

    def summary(self) -> dict[str, object]:
        return {
            "source": self.source,
            "num_users": self.num_users,
            "num_movies": self.num_movies,
            "num_ratings": len(self.ratings),
        }


def http_fetcher(timeout: float = 10.0) -> Fetcher:
    """Fetch a text resource over HTTP without blocking the event loop."""

    def _get(url: str) -> str:
        response = requests.get(url, timeout=timeout)
        if not response.ok:
            raise RetrievalFailure(url, f"HTTP {response.status_code}")
        return response.text

    async def fetch(url: str) -> str:
        return await asyncio.to_thread(_get, url)

    return fetch


async def first_success(locations: Sequence[str], fetcher: Fetcher) -> Optional[str]:
    """Return the body of the first location that loads, or None if all fail."""
    for location in locations:
        try:
            body = await fetcher(location)
        except Exception as exc:
            logger.warning("Failed to load from %s: %s", location, exc)
            continue
        logger.info("Loaded %s", location)
        return body
    return None


def build_dataset(
    movies: list[Movie],
    ratings: list[Rating],
    *,
    source: DatasetSource = "remote",
) -> Dataset:
    """Derive dimensions and drop ratings that break the embedding bounds."""
    num_movies = len(movies)
    kept, _ = validate_ratings(ratings, max_user_id(ratings), num_movies)
    num_users = max_user_id(kept)
    return Dataset(movies=movies, ratings=kept, num_users=num_users, num_movies=num_movies, source=source)


def synthetic_dataset(
    rng: np.random.Generator | None = None,
    *,
    num_users: int = SYNTHETIC_USERS,
) -> Dataset:
    """Fixed 20-title catalog with random ratings skewed towards 3-5 stars."""
    rng = rng if rng is not None else np.random.default_rng()

    movies = [Movie(id=i, title=title) for i, title in enumerate(SAMPLE_TITLES, start=1)]
    num_movies = len(movies)

    ratings: list[Rating] = []
    for user_id in range(1, num_users + 1):
        n = int(rng.integers(SYNTHETIC_MIN_RATINGS, SYNTHETIC_MAX_RATINGS + 1))
        movie_ids = rng.choice(num_movies, size=min(n, num_movies), replace=False) + 1
        for movie_id in movie_ids:
            p = rng.random()
            if p < 0.6:
                value = int(rng.integers(4, 6))
            elif p < 0.9:
                value = 3
            else:
                value = int(rng.integers(1, 3))
            ratings.append(Rating(user_id=user_id, movie_id=int(movie_id), rating=float(value)))

    logger.info(
        "Sample data loaded: %d users, %d movies, %d ratings",
        num_users,
        num_movies,
        len(ratings),
    )
    return Dataset(
        movies=movies,
        ratings=ratings,
        num_users=num_users,
        num_movies=num_movies,
        source="synthetic",
    )


async def _load_remote(cfg: DataConfig, fetcher: Fetcher) -> Optional[Dataset]:
    movies_text = await first_success(cfg.movie_sources, fetcher)
    if movies_text is None:
        logger.warning("All movie sources failed")
        return None
    ratings_text = await first_success(cfg.rating_sources, fetcher)
    if ratings_text is None:
        logger.warning("All rating sources failed")
        return None

    dataset = build_dataset(parse_movies(movies_text), parse_ratings(ratings_text))
    if not dataset.movies or not dataset.ratings:
        logger.warning("Remote data parsed into an empty catalog or rating list")
        return None
    return dataset


async def load_dataset(
    cfg: DataConfig | None = None,
    *,
    fetcher: Fetcher | None = None,
    rng: np.random.Generator | None = None,
) -> Dataset:
    """Load MovieLens-100K, falling back to synthetic data when retrieval fails."""
    cfg = cfg or DataConfig()
    fetcher = fetcher or http_fetcher(cfg.request_timeout)

    dataset: Optional[Dataset] = None
    if cfg.offline:
        logger.info("Offline mode: skipping remote sources")
    else:
        logger.info("Loading MovieLens 100K dataset...")
        try:
            dataset = await _load_remote(cfg, fetcher)
        except Exception:
            logger.exception("Error loading data")
            dataset = None

    if dataset is None:
        logger.info("Using embedded sample data as fallback...")
        return synthetic_dataset(rng)

    logger.info(
        "Data loaded successfully: %d users, %d movies, %d ratings",
        dataset.num_users,
        dataset.num_movies,
        len(dataset.ratings),
    )
    return dataset
