from __future__ import annotations

import logging
import os
import random

import numpy as np
import torch


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Per-request connection chatter from `requests`; our loader logs each source itself.
_NOISY_LOGGERS = ("urllib3", "httpx")


def setup_logging(level: int | str = "INFO") -> None:
    """Configure stdlib logging once; later calls only adjust the level."""
    if isinstance(level, str):
        level = level.strip().upper()

    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(level)
        return

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def seed_everything(seed: int, *, deterministic: bool = True) -> None:
    """Seed python, numpy and torch so a training run can be repeated.

    Embedding init and batch shuffling both draw from torch; the synthetic
    fallback draws from numpy unless it is handed its own generator.
    """
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    torch.cuda.manual_seed_all(seed)

    if deterministic:
        torch.backends.cudnn.deterministic = True
        torch.backends.cudnn.benchmark = False

    os.environ["PYTHONHASHSEED"] = str(seed)


def device_from_str(device: str | None) -> torch.device:
    """`None` or `"auto"` picks the best available accelerator.

    An explicit `cuda` request on a machine without CUDA falls back to cpu.
    """
    name = "auto" if device is None else str(device).strip().lower()
    if name == "auto":
        if torch.cuda.is_available():
            return torch.device("cuda")
        if getattr(torch.backends, "mps", None) is not None and torch.backends.mps.is_available():
            return torch.device("mps")
        return torch.device("cpu")

    requested = torch.device(name)
    if requested.type == "cuda" and not torch.cuda.is_available():
        logger.warning("CUDA requested but not available; training on cpu")
        return torch.device("cpu")
    return requested
