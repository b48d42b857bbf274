"""Tiny matrix-factorization rating predictor for MovieLens-100K.

Core idea:
- Parse `u.item` / `u.data` into typed records (remote, with a synthetic fallback)
- Train a two-embedding dot-product model in PyTorch (Adam, MSE)
- Serve single (user, movie) rating predictions, clamped to 1..5 stars
"""
