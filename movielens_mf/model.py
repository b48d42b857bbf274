from __future__ import annotations

import logging

import torch
import torch.nn as nn


logger = logging.getLogger(__name__)

DEFAULT_LATENT_DIM = 10


class MatrixFactorization(nn.Module):
    """Plain MF model: rating(u, m) = dot(user_emb[u], movie_emb[m]).

    Both tables carry one extra row so raw 1-based MovieLens ids index them
    directly; row 0 is never trained. No bias terms and no regularization.
    """

    def __init__(self, n_users: int, n_movies: int, *, latent_dim: int = DEFAULT_LATENT_DIM) -> None:
        super().__init__()
        self.n_users = int(n_users)
        self.n_movies = int(n_movies)
        self.latent_dim = int(latent_dim)

        self.user_embed = nn.Embedding(self.n_users + 1, self.latent_dim)
        self.movie_embed = nn.Embedding(self.n_movies + 1, self.latent_dim)

        nn.init.uniform_(self.user_embed.weight, -0.05, 0.05)
        nn.init.uniform_(self.movie_embed.weight, -0.05, 0.05)

    def forward(self, user_ids: torch.Tensor, movie_ids: torch.Tensor) -> torch.Tensor:
        # Accept (batch,) or (batch, 1) id tensors; flatten lookups to (batch, latent_dim).
        u = self.user_embed(user_ids).reshape(-1, self.latent_dim)
        m = self.movie_embed(movie_ids).reshape(-1, self.latent_dim)
        return (u * m).sum(dim=1, keepdim=True)


def build_model(num_users: int, num_movies: int, latent_dim: int = DEFAULT_LATENT_DIM) -> MatrixFactorization:
    if int(num_users) <= 0 or int(num_movies) <= 0:
        raise ValueError(f"num_users and num_movies must be > 0, got {num_users} and {num_movies}")
    if int(latent_dim) <= 0:
        raise ValueError(f"latent_dim must be > 0, got {latent_dim}")

    model = MatrixFactorization(num_users, num_movies, latent_dim=latent_dim)
    logger.info(
        "Model architecture created: users=%d movies=%d latent_dim=%d",
        int(num_users),
        int(num_movies),
        int(latent_dim),
    )
    return model
