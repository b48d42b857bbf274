"""Error taxonomy shared by the loader, trainer, predictor and session."""

from __future__ import annotations


class RecommenderError(Exception):
    """Base class for all errors raised by this package."""


class RetrievalFailure(RecommenderError):
    """A single source location could not be fetched."""

    def __init__(self, location: str, reason: str) -> None:
        super().__init__(f"Failed to load {location}: {reason}")
        self.location = location
        self.reason = reason


class MissingSelection(RecommenderError):
    def __init__(self, message: str = "Please select both a user and a movie.") -> None:
        super().__init__(message)


class UnknownSelection(RecommenderError):
    """The selected user or movie id is not part of the loaded dataset."""


class ModelNotReady(RecommenderError):
    def __init__(
        self,
        message: str = "Model is not ready yet. Please wait for training to complete.",
    ) -> None:
        super().__init__(message)


class TrainingFailure(RecommenderError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Training failed: {reason}")
        self.reason = reason
