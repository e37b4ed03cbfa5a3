"""Checkpoint store exceptions."""


class CheckpointError(Exception):
    """Base class for checkpoint store failures."""


class ArtifactNotFoundError(CheckpointError, KeyError):
    """Raised when reading an artifact that was never written."""

    def __init__(self, run_id: str, key: str):
        self.run_id = run_id
        self.key = key
        super().__init__(f"No artifact '{key}' for run '{run_id}'")

    def __str__(self) -> str:
        return self.args[0]


class CheckpointConflictError(CheckpointError):
    """Raised when an append-only artifact would be overwritten."""

    def __init__(self, run_id: str, key: str, message: str | None = None):
        self.run_id = run_id
        self.key = key
        super().__init__(message or f"Artifact '{key}' already exists for run '{run_id}'")


class InvalidArtifactKeyError(CheckpointError, ValueError):
    """Raised for keys that are not lowercase, hyphenated identifiers."""
