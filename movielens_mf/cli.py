"""Terminal front end: load MovieLens-100K, train the MF model, print predictions.

Examples:
    python -m movielens_mf.cli --user-id 196 --movie-id 242
    python -m movielens_mf.cli --offline --epochs 20 --user-id 3 --movie-id 7
    python -m movielens_mf.cli --serve --port 8000
"""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import sys
from pathlib import Path

import pandas as pd

from .config import AppConfig, load_config
from .session import Session
from .train import Completed
from .utils import setup_logging


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Matrix-factorization rating predictions on MovieLens-100K")
    p.add_argument("--config", type=Path, default=None, help="Path to config YAML (default: repo config.yaml)")
    p.add_argument("--user-id", type=int, action="append", default=None, help="User id to predict for (repeatable)")
    p.add_argument("--movie-id", type=int, action="append", default=None, help="Movie id to predict (repeatable)")
    p.add_argument("--epochs", type=int, default=None, help="Override epochs")
    p.add_argument("--batch-size", type=int, default=None, help="Override batch size")
    p.add_argument("--latent-dim", type=int, default=None, help="Override latent dimension")
    p.add_argument("--lr", type=float, default=None, help="Override learning rate")
    p.add_argument("--device", type=str, default=None, help="cpu/cuda/mps; default auto")
    p.add_argument("--seed", type=int, default=None, help="Override random seed")
    p.add_argument("--offline", action="store_true", help="Skip remote sources and use synthetic data")
    p.add_argument("--log-level", type=str, default=None, help="Logging level (default from config)")
    p.add_argument("--serve", action="store_true", help="Run the HTTP service instead")
    p.add_argument("--host", type=str, default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    return p


def apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    training = cfg.training
    if args.epochs is not None:
        training = dataclasses.replace(training, epochs=int(args.epochs))
    if args.batch_size is not None:
        training = dataclasses.replace(training, batch_size=int(args.batch_size))
    if args.lr is not None:
        training = dataclasses.replace(training, learning_rate=float(args.lr))
    if args.device is not None:
        training = dataclasses.replace(training, device=str(args.device))

    data = cfg.data
    if args.offline:
        data = dataclasses.replace(data, offline=True)

    return dataclasses.replace(
        cfg,
        data=data,
        training=training,
        latent_dim=int(args.latent_dim) if args.latent_dim is not None else cfg.latent_dim,
        seed=int(args.seed) if args.seed is not None else cfg.seed,
        log_level=str(args.log_level) if args.log_level else cfg.log_level,
    )


async def run(cfg: AppConfig, user_ids: list[int], movie_ids: list[int]) -> int:
    session = Session(cfg)
    dataset = await session.load_dataset()
    if dataset is None:
        print(session.status)
        return 1

    print(f"Dataset ({dataset.source}): {dataset.num_users} users, {dataset.num_movies} movies, {len(dataset.ratings)} ratings")
    result = await session.train_model()
    print(session.status)
    if not isinstance(result, Completed):
        return 1

    history = pd.DataFrame({"epoch": range(1, len(result.history["loss"]) + 1), "loss": result.history["loss"]})
    if result.history.get("val_loss"):
        history["val_loss"] = result.history["val_loss"]
    print("\n=== Training History ===")
    print(history.to_string(index=False, float_format=lambda x: f"{x:.4f}"))

    if user_ids and movie_ids:
        print("\n=== Predictions ===")
        for uid in user_ids:
            for mid in movie_ids:
                print(session.predict_message(uid, mid))
    return 0


def main(argv: list[str] | None = None) -> None:
    args = build_arg_parser().parse_args(argv)

    cfg = apply_overrides(load_config(args.config), args)
    setup_logging(cfg.log_level)

    if args.serve:
        import uvicorn

        from .service.app import configure

        uvicorn.run(configure(cfg), host=args.host, port=int(args.port))
        return

    sys.exit(asyncio.run(run(cfg, args.user_id or [], args.movie_id or [])))


if __name__ == "__main__":
    main()
