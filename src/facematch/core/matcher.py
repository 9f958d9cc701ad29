"""Embedding matcher: cosine similarity and best-match search over a gallery.

Both operations are pure. ``find_best_match`` reads the gallery snapshot it is
given and never mutates it, so any number of callers may share a snapshot.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Literal

import numpy as np

from facematch.errors import DimensionMismatch, InvalidEmbedding, InvalidThreshold

if TYPE_CHECKING:
    from collections.abc import Iterable

    from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD: float = 0.7

# Reported when nothing was compared; lower than any valid cosine score.
NO_MATCH_SCORE: float = -math.inf

MismatchPolicy = Literal["strict", "skip"]


@dataclass(frozen=True)
class EnrollmentRecord:
    """A named embedding registered for future matching."""

    record_id: str
    name: str
    embedding: tuple[float, ...]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def dimension(self) -> int:
        return len(self.embedding)


@dataclass(frozen=True)
class MatchResult:
    """Outcome of one matching call."""

    name: str | None
    score: float
    accepted: bool
    record_id: str | None = None

    @property
    def compared(self) -> bool:
        """False when the gallery held nothing comparable."""
        return self.score != NO_MATCH_SCORE


def as_embedding(value: ArrayLike) -> NDArray[np.float64]:
    """Convert a float sequence into a validated 1-D float64 vector.

    Raises:
        InvalidEmbedding: If the value is not a non-empty, finite, 1-D vector.
    """
    try:
        vector = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidEmbedding(f"Embedding is not numeric: {exc}") from exc

    if vector.ndim != 1:
        raise InvalidEmbedding(f"Embedding must be one-dimensional, got shape {vector.shape}")
    if vector.size == 0:
        raise InvalidEmbedding("Embedding must not be empty")
    if not np.all(np.isfinite(vector)):
        raise InvalidEmbedding("Embedding contains NaN or infinite values")
    return vector


def _cosine(a: NDArray[np.float64], b: NDArray[np.float64]) -> float:
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatch(a.shape[0], b.shape[0])

    # Scale to max-abs 1 so norms and dot neither overflow nor underflow.
    scale_a = float(np.max(np.abs(a)))
    scale_b = float(np.max(np.abs(b)))
    if scale_a == 0.0 or scale_b == 0.0:
        return 0.0
    a = a / scale_a
    b = b / scale_b

    score = float(np.dot(a, b)) / (float(np.linalg.norm(a)) * float(np.linalg.norm(b)))
    if not math.isfinite(score):
        raise InvalidEmbedding(f"Cosine similarity is not finite: {score}")
    return float(np.clip(score, -1.0, 1.0))


def similarity(a: ArrayLike, b: ArrayLike) -> float:
    """Return the cosine similarity of two embeddings.

    A zero-magnitude vector on either side yields 0.0.

    Raises:
        DimensionMismatch: If the embeddings differ in length.
        InvalidEmbedding: If either value is not a valid embedding.
    """
    return _cosine(as_embedding(a), as_embedding(b))


def validate_threshold(threshold: float) -> float:
    if not -1.0 <= threshold <= 1.0:
        raise InvalidThreshold(f"Threshold must be within [-1, 1], got {threshold}")
    return float(threshold)


def find_best_match(
    query: ArrayLike,
    gallery: Iterable[EnrollmentRecord],
    threshold: float = DEFAULT_THRESHOLD,
    *,
    on_mismatch: MismatchPolicy = "strict",
) -> MatchResult:
    """Find the gallery record most similar to ``query``.

    The scan keeps the first record on ties. The best score is reported even
    when it falls below ``threshold``.

    Args:
        query: Embedding to identify.
        gallery: Enrollment records in gallery order.
        threshold: Minimum score for a positive identification, in [-1, 1].
        on_mismatch: ``"strict"`` propagates the first ``DimensionMismatch``;
            ``"skip"`` ignores records whose dimension differs from the query.

    Returns:
        The match result. An empty gallery yields ``NO_MATCH_SCORE``.

    Raises:
        InvalidThreshold: If ``threshold`` is outside [-1, 1].
        DimensionMismatch: In strict mode, on the first record of a different length.
    """
    threshold = validate_threshold(threshold)
    vector = as_embedding(query)

    best: EnrollmentRecord | None = None
    best_score = NO_MATCH_SCORE
    for record in gallery:
        try:
            score = _cosine(vector, np.asarray(record.embedding, dtype=np.float64))
        except DimensionMismatch:
            if on_mismatch == "strict":
                raise
            logger.warning(
                "Skipping record %s (%s): dimension %d does not match query dimension %d",
                record.record_id,
                record.name,
                record.dimension,
                vector.shape[0],
            )
            continue

        if score > best_score:
            best, best_score = record, score

    if best is not None and best_score >= threshold:
        return MatchResult(name=best.name, score=best_score, accepted=True, record_id=best.record_id)
    return MatchResult(name=None, score=best_score, accepted=False)
