"""HTTP API (FastAPI) over a single training/prediction session."""
