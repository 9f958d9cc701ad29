"""Exception hierarchy for FaceMatch."""

from __future__ import annotations


class FaceMatchError(Exception):
    """Base class for all FaceMatch errors."""


class DimensionMismatch(FaceMatchError):
    """Two embeddings of different length were compared."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class InvalidEmbedding(FaceMatchError, ValueError):
    """An embedding is not a non-empty, finite, one-dimensional vector."""


class InvalidThreshold(FaceMatchError, ValueError):
    """An acceptance threshold outside [-1, 1]."""


class InvalidName(FaceMatchError, ValueError):
    """An enrollment name that is empty or too long."""


class EmbeddingUnavailable(FaceMatchError):
    """The embedding generator could not produce an embedding."""


class NoFaceDetected(FaceMatchError):
    """No face was found in the captured image."""


class MultipleFacesDetected(FaceMatchError):
    """More than one face was found where exactly one is required."""

    def __init__(self, count: int) -> None:
        super().__init__(f"Expected exactly one face, found {count}")
        self.count = count


class RecordNotFound(FaceMatchError, KeyError):
    """No enrollment record with the given id."""

    def __init__(self, record_id: str) -> None:
        super().__init__(record_id)
        self.record_id = record_id

    def __str__(self) -> str:
        return f"Unknown enrollment record: {self.record_id}"


class StoreError(FaceMatchError):
    """The enrollment store could not be read or written."""
