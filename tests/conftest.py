from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure `import movielens_mf...` works when pytest uses importlib import mode.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from movielens_mf.data import Movie, Rating  # noqa: E402


@pytest.fixture()
def tiny_movies() -> list[Movie]:
    return [Movie(id=1, title="Toy Story"), Movie(id=2, title="GoldenEye"), Movie(id=3, title="Four Rooms")]


@pytest.fixture()
def tiny_ratings() -> list[Rating]:
    """3 users x 3 movies, every pair rated once."""
    values = {
        (1, 1): 5.0, (1, 2): 3.0, (1, 3): 4.0,
        (2, 1): 4.0, (2, 2): 2.0, (2, 3): 5.0,
        (3, 1): 1.0, (3, 2): 5.0, (3, 3): 3.0,
    }
    return [Rating(user_id=u, movie_id=m, rating=r) for (u, m), r in values.items()]
