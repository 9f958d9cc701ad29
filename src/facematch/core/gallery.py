"""Enrollment gallery state.

The gallery is published as immutable snapshots. Writers build a new tuple
under a lock and swap it in; readers take the current tuple without locking
and keep it for the duration of a match, so enrollment never disturbs an
in-flight lookup.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import TYPE_CHECKING

from facematch.core.matcher import EnrollmentRecord, as_embedding
from facematch.errors import DimensionMismatch, InvalidName, RecordNotFound

if TYPE_CHECKING:
    from collections.abc import Iterable

    from numpy.typing import ArrayLike

logger = logging.getLogger(__name__)

Gallery = tuple[EnrollmentRecord, ...]

MAX_NAME_LENGTH: int = 100


def normalize_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise InvalidName("Name must not be empty")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise InvalidName(f"Name must be at most {MAX_NAME_LENGTH} characters")
    return cleaned


class GalleryState:
    """Owns the enrolled gallery and the recognition toggle."""

    def __init__(self, embedding_dim: int | None = None, *, recognition_active: bool = False) -> None:
        self._lock = threading.Lock()
        self._gallery: Gallery = ()
        self._embedding_dim = embedding_dim
        self._configured_dim = embedding_dim is not None
        self._recognition_active = recognition_active

    # -- Readers ------------------------------------------------------------

    def snapshot(self) -> Gallery:
        """Return the current immutable gallery."""
        return self._gallery

    @property
    def embedding_dim(self) -> int | None:
        return self._embedding_dim

    @property
    def recognition_active(self) -> bool:
        return self._recognition_active

    def __len__(self) -> int:
        return len(self._gallery)

    # -- Transitions --------------------------------------------------------

    def enroll(self, name: str, embedding: ArrayLike) -> EnrollmentRecord:
        """Append a new record for ``name``.

        Re-enrolling an existing name adds another record.

        Raises:
            InvalidName: If the name is blank or too long.
            InvalidEmbedding: If the embedding is not a finite 1-D vector.
            DimensionMismatch: If the embedding length differs from the gallery's.
        """
        cleaned = normalize_name(name)
        vector = as_embedding(embedding)

        with self._lock:
            dim = self._embedding_dim
            if dim is not None and vector.shape[0] != dim:
                raise DimensionMismatch(dim, vector.shape[0])

            record = EnrollmentRecord(
                record_id=uuid.uuid4().hex,
                name=cleaned,
                embedding=tuple(float(x) for x in vector),
            )
            self._gallery = (*self._gallery, record)
            if dim is None:
                self._embedding_dim = record.dimension

        logger.info("Enrolled %s as %s (dim=%d, gallery=%d)", cleaned, record.record_id, record.dimension, len(self))
        return record

    def remove(self, record_id: str) -> EnrollmentRecord:
        """Remove one record by id.

        Raises:
            RecordNotFound: If no record has that id.
        """
        with self._lock:
            for index, record in enumerate(self._gallery):
                if record.record_id == record_id:
                    self._gallery = self._gallery[:index] + self._gallery[index + 1 :]
                    self._reset_dim_if_empty()
                    break
            else:
                raise RecordNotFound(record_id)

        logger.info("Removed record %s (%s)", record_id, record.name)
        return record

    def remove_name(self, name: str) -> int:
        """Remove every record enrolled under ``name``; return how many were removed."""
        cleaned = name.strip()
        with self._lock:
            kept = tuple(record for record in self._gallery if record.name != cleaned)
            removed = len(self._gallery) - len(kept)
            self._gallery = kept
            self._reset_dim_if_empty()

        logger.info("Removed %d record(s) for %s", removed, cleaned)
        return removed

    def clear(self) -> int:
        """Drop the whole gallery; return how many records were removed."""
        with self._lock:
            removed = len(self._gallery)
            self._gallery = ()
            self._reset_dim_if_empty()

        logger.info("Cleared gallery (%d record(s))", removed)
        return removed

    def replace(self, records: Iterable[EnrollmentRecord]) -> None:
        """Install a gallery loaded from storage.

        Raises:
            DimensionMismatch: If the records do not share one dimension.
        """
        gallery: Gallery = tuple(records)
        with self._lock:
            dim = self._embedding_dim if self._configured_dim else None
            for record in gallery:
                if dim is None:
                    dim = record.dimension
                elif record.dimension != dim:
                    raise DimensionMismatch(dim, record.dimension)
            self._gallery = gallery
            if not self._configured_dim:
                self._embedding_dim = dim

        logger.info("Loaded gallery with %d record(s)", len(gallery))

    def set_recognition(self, active: bool) -> None:
        self._recognition_active = active
        logger.info("Recognition %s", "enabled" if active else "disabled")

    def toggle_recognition(self) -> bool:
        """Flip the recognition flag and return the new value."""
        with self._lock:
            active = not self._recognition_active
            self._recognition_active = active
        logger.info("Recognition %s", "enabled" if active else "disabled")
        return active

    # -- Internal -----------------------------------------------------------

    def _reset_dim_if_empty(self) -> None:
        # A learned dimension is forgotten once the gallery empties; a configured one is kept.
        if not self._gallery and not self._configured_dim:
            self._embedding_dim = None
