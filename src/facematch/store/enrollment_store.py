"""Enrollment store: persist the gallery across sessions.

The JSON file store replaces the whole document on every save by writing a
temp file next to the target and renaming it over the original.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, ValidationError

from facematch.core.matcher import EnrollmentRecord, as_embedding
from facematch.errors import InvalidEmbedding, StoreError

if TYPE_CHECKING:
    from facematch.config import Settings
    from facematch.core.gallery import Gallery

logger = logging.getLogger(__name__)

STORE_VERSION: int = 1


class EnrollmentStore(Protocol):
    """Protocol for gallery persistence."""

    def load(self) -> Gallery:
        """Return the saved gallery, or an empty gallery if none exists."""
        ...

    def save(self, gallery: Gallery) -> None:
        """Replace the saved gallery atomically."""
        ...


class StoredRecord(BaseModel):
    record_id: str
    name: str
    embedding: list[float]
    created_at: datetime

    @classmethod
    def from_record(cls, record: EnrollmentRecord) -> StoredRecord:
        return cls(
            record_id=record.record_id,
            name=record.name,
            embedding=list(record.embedding),
            created_at=record.created_at,
        )

    def to_record(self) -> EnrollmentRecord:
        return EnrollmentRecord(
            record_id=self.record_id,
            name=self.name,
            embedding=tuple(as_embedding(self.embedding).tolist()),
            created_at=self.created_at,
        )


class StoredGallery(BaseModel):
    version: int = STORE_VERSION
    records: list[StoredRecord] = []


class InMemoryEnrollmentStore:
    """Keeps the last saved gallery in memory."""

    def __init__(self) -> None:
        self._gallery: Gallery = ()

    def load(self) -> Gallery:
        return self._gallery

    def save(self, gallery: Gallery) -> None:
        self._gallery = tuple(gallery)


class JsonFileEnrollmentStore:
    """Stores the gallery as a single JSON document."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Gallery:
        if not self._path.exists():
            logger.info("No gallery at %s, starting empty", self._path)
            return ()

        try:
            document = StoredGallery.model_validate_json(self._path.read_bytes())
        except (OSError, ValidationError) as exc:
            raise StoreError(f"Cannot read gallery from {self._path}: {exc}") from exc

        if document.version != STORE_VERSION:
            raise StoreError(f"Unsupported gallery version {document.version} in {self._path}")

        try:
            gallery = tuple(stored.to_record() for stored in document.records)
        except InvalidEmbedding as exc:
            raise StoreError(f"Invalid record in {self._path}: {exc}") from exc
        logger.info("Loaded %d record(s) from %s", len(gallery), self._path)
        return gallery

    def save(self, gallery: Gallery) -> None:
        document = StoredGallery(records=[StoredRecord.from_record(record) for record in gallery])
        payload = document.model_dump_json(indent=2)

        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as handle:
                        handle.write(payload)
                        handle.flush()
                        os.fsync(handle.fileno())
                    os.replace(tmp_name, self._path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as exc:
                raise StoreError(f"Cannot write gallery to {self._path}: {exc}") from exc

        logger.debug("Saved %d record(s) to %s", len(gallery), self._path)


def create_store(settings: Settings) -> EnrollmentStore:
    """Build the store selected by configuration."""
    if settings.gallery_path:
        return JsonFileEnrollmentStore(settings.gallery_path)
    return InMemoryEnrollmentStore()
