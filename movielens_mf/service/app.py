"""FastAPI service entrypoint for the matrix-factorization rating demo."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException

from ..config import AppConfig, config_from_env
from ..errors import MissingSelection, ModelNotReady, TrainingFailure, UnknownSelection
from ..session import Session
from ..train import Completed
from ..utils import setup_logging
from .schemas import (
    DatasetSummary,
    OptionItem,
    PredictRequest,
    PredictResponse,
    StatusResponse,
    TrainResponse,
)

logger = logging.getLogger(__name__)


def build_session(cfg: AppConfig) -> Session:
    return Session(cfg)


def _start_training(app_: FastAPI, session: Session) -> None:
    app_.state.training_task = session.start_training()


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg = getattr(app.state, "config", None) or config_from_env()
    setup_logging(cfg.log_level)

    session = build_session(cfg)
    app.state.session = session
    app.state.training_task = None

    await session.load_dataset()
    if session.dataset is not None:
        logger.info("Starting model training... This may take a few moments.")
        _start_training(app, session)
    yield

    task = getattr(app.state, "training_task", None)
    if task is not None and not task.done():
        # Training cannot be cancelled; let it finish before shutting down.
        logger.info("Waiting for training to finish before shutdown")
        await task


app = FastAPI(title="MovieLens Matrix Factorization Demo", lifespan=lifespan)


def configure(cfg: AppConfig) -> FastAPI:
    """Serve `cfg` instead of reading `CONFIG_PATH` / `LOG_LEVEL` at startup."""
    app.state.config = cfg
    return app


def _session(app_: FastAPI) -> Session:
    session = getattr(app_.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Session not initialized")
    return session


@app.get("/status", response_model=StatusResponse)
def status() -> dict:
    """Status line, training progress and dataset dimensions."""
    session = _session(app)
    last = session.last_result
    dataset = session.dataset
    return {
        "status": session.status,
        "progress": session.progress,
        "ready": session.ready,
        "training": session.is_training,
        "final_loss": last.final_loss if isinstance(last, Completed) else None,
        "dataset": DatasetSummary(**dataset.summary()) if dataset is not None else None,
    }


@app.get("/users", response_model=list[OptionItem])
def users() -> list[dict]:
    session = _session(app)
    return [{"value": v, "label": label} for v, label in session.user_options()]


@app.get("/movies", response_model=list[OptionItem])
def movies() -> list[dict]:
    session = _session(app)
    return [{"value": v, "label": label} for v, label in session.movie_options()]


@app.post("/predict", response_model=PredictResponse)
def predict(req: PredictRequest) -> dict:
    """Predict the rating the selected user would give the selected movie."""
    session = _session(app)
    try:
        outcome = session.predict(req.userId, req.movieId)
    except MissingSelection as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UnknownSelection as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ModelNotReady as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Prediction error")
        raise HTTPException(status_code=500, detail=f"Prediction failed: {exc}") from exc

    p = outcome.prediction
    d = outcome.display
    return {
        "userId": p.user_id,
        "movieId": p.movie_id,
        "title": p.title,
        "raw_score": p.raw_score,
        "score": d.score,
        "score_text": d.score_text,
        "stars": d.stars,
        "full_stars": d.full_stars,
        "empty_stars": d.empty_stars,
        "latent_dim": session.config.latent_dim,
    }


@app.post("/train", response_model=TrainResponse, status_code=202)
async def retrain() -> dict:
    """Start a fresh training run in the background."""
    session = _session(app)
    if session.dataset is None:
        raise HTTPException(status_code=409, detail="No dataset loaded")
    try:
        _start_training(app, session)
    except TrainingFailure as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"status": "Starting model training... This may take a few moments."}
