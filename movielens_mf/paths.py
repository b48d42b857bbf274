from __future__ import annotations

from pathlib import Path


ROOT_MARKERS = ("config.yaml", "pyproject.toml", ".git")


def _find_root(start: Path) -> Path | None:
    for candidate in (start, *start.parents):
        if any((candidate / marker).exists() for marker in ROOT_MARKERS):
            return candidate
    return None


def get_repo_root() -> Path:
    """Nearest directory holding a root marker, searched from the cwd, then from this package."""
    for start in (Path.cwd().resolve(), Path(__file__).resolve().parent):
        root = _find_root(start)
        if root is not None:
            return root
    raise FileNotFoundError(f"Could not locate repo root (expected one of {', '.join(ROOT_MARKERS)}).")


def resolve_path(path: Path | str, *, repo_root: Path | None = None) -> Path:
    """Resolve `path` against the repo root unless it is already absolute."""
    p = Path(path)
    if p.is_absolute():
        return p
    root = repo_root if repo_root is not None else get_repo_root()
    return (root / p).resolve()
