"""Pydantic schemas for the prediction API."""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, Field


class DatasetSummary(BaseModel):
    source: str
    num_users: int
    num_movies: int
    num_ratings: int


class StatusResponse(BaseModel):
    """Current session status line and training progress (0..1)."""

    status: str
    progress: float = Field(..., ge=0.0, le=1.0)
    ready: bool
    training: bool
    final_loss: Optional[float] = None
    dataset: Optional[DatasetSummary] = None


class OptionItem(BaseModel):
    """One dropdown entry."""

    value: int
    label: str


class PredictRequest(BaseModel):
    """Selected user and movie. Empty values are reported as a missing selection."""

    userId: Optional[Union[int, str]] = Field(None, description="User id (1..num_users)")
    movieId: Optional[Union[int, str]] = Field(None, description="Movie id from the catalog")


class PredictResponse(BaseModel):
    userId: int
    movieId: int
    title: str
    raw_score: float
    score: float
    score_text: str
    stars: str
    full_stars: int
    empty_stars: int
    latent_dim: int


class TrainResponse(BaseModel):
    status: str
