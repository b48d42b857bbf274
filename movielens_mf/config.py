"""Application configuration loaded from `config.yaml`."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .loader import DEFAULT_MOVIE_SOURCES, DEFAULT_RATING_SOURCES, DataConfig
from .model import DEFAULT_LATENT_DIM
from .paths import get_repo_root, resolve_path
from .train import TrainConfig


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppConfig:
    data: DataConfig = field(default_factory=DataConfig)
    training: TrainConfig = field(default_factory=TrainConfig)
    latent_dim: int = DEFAULT_LATENT_DIM
    seed: int | None = 42
    log_level: str = "INFO"


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"config section {name!r} must be a mapping, got {type(value)}")
    return value


def _sources(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def config_from_mapping(raw: dict[str, Any]) -> AppConfig:
    """Build an `AppConfig`; every key is optional."""
    data_raw = _section(raw, "data")
    train_raw = _section(raw, "training")
    model_raw = _section(raw, "model")

    defaults = TrainConfig()
    data = DataConfig(
        movie_sources=_sources(data_raw.get("movie_sources"), DEFAULT_MOVIE_SOURCES),
        rating_sources=_sources(data_raw.get("rating_sources"), DEFAULT_RATING_SOURCES),
        request_timeout=float(data_raw.get("request_timeout", 10.0)),
        offline=bool(data_raw.get("offline", False)),
    )
    training = TrainConfig(
        epochs=int(train_raw.get("epochs", defaults.epochs)),
        batch_size=int(train_raw.get("batch_size", defaults.batch_size)),
        learning_rate=float(train_raw.get("learning_rate", defaults.learning_rate)),
        validation_split=float(train_raw.get("validation_split", defaults.validation_split)),
        shuffle=bool(train_raw.get("shuffle", defaults.shuffle)),
        random_state=int(train_raw.get("random_state", defaults.random_state)),
        device=train_raw.get("device", defaults.device),
    )
    seed = raw.get("seed", 42)
    return AppConfig(
        data=data,
        training=training,
        latent_dim=int(model_raw.get("latent_dim", DEFAULT_LATENT_DIM)),
        seed=None if seed is None else int(seed),
        log_level=str(raw.get("log_level", "INFO")),
    )


def load_config(path: Path | str | None = None) -> AppConfig:
    """Read `config.yaml` (or `path`); a missing default file yields defaults."""
    if path is None:
        try:
            path = get_repo_root() / "config.yaml"
        except FileNotFoundError:
            logger.info("No repo root found; using default configuration")
            return AppConfig()
        if not path.exists():
            logger.info("No config.yaml at %s; using default configuration", path)
            return AppConfig()
    else:
        path = resolve_path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config not found: {path}")

    raw = yaml.safe_load(path.read_text())
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Expected YAML mapping at {path}, got {type(raw)}")
    logger.info("Loaded config from %s", path)
    return config_from_mapping(raw)


def config_from_env() -> AppConfig:
    """Service configuration: `CONFIG_PATH` and `LOG_LEVEL` env vars override defaults."""
    raw_path = os.getenv("CONFIG_PATH")
    cfg = load_config(raw_path if raw_path and raw_path.strip() else None)
    level = os.getenv("LOG_LEVEL")
    if level and level.strip():
        cfg = replace(cfg, log_level=level.strip())
    return cfg
