"""Recognition service: enrollment and identification flows.

Ties the gallery state and the enrollment store to the capture pipeline
(image source -> face locator -> embedding generator). Face location runs on
every ``recognize`` call; embedding computation is rate-limited by
``min_embedding_interval``.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

from facematch.core.gallery import normalize_name
from facematch.core.matcher import find_best_match
from facematch.errors import MultipleFacesDetected, NoFaceDetected, StoreError

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import ArrayLike

    from facematch.config import Settings
    from facematch.core.gallery import Gallery, GalleryState
    from facematch.core.matcher import EnrollmentRecord, MatchResult
    from facematch.ml.embedding_generator import EmbeddingGenerator
    from facematch.ml.face_locator import FaceLocator
    from facematch.ml.image_source import ImageSource
    from facematch.store.enrollment_store import EnrollmentStore

logger = logging.getLogger(__name__)


class RecognitionService:
    """Enrolls and identifies faces against a persisted gallery."""

    def __init__(
        self,
        state: GalleryState,
        store: EnrollmentStore,
        settings: Settings,
        *,
        image_source: ImageSource | None = None,
        face_locator: FaceLocator | None = None,
        generator: EmbeddingGenerator | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._state = state
        self._store = store
        self._settings = settings
        self._image_source = image_source
        self._face_locator = face_locator
        self._generator = generator
        self._clock = clock
        self._write_lock = threading.Lock()
        self._last_embedding_at: float | None = None

    @property
    def state(self) -> GalleryState:
        return self._state

    @property
    def has_pipeline(self) -> bool:
        return None not in (self._image_source, self._face_locator, self._generator)

    # -- Gallery ------------------------------------------------------------

    def load(self) -> int:
        """Replace the in-memory gallery with the stored one; return its size."""
        gallery = self._store.load()
        self._state.replace(gallery)
        return len(gallery)

    def enroll(self, name: str) -> EnrollmentRecord:
        """Capture a frame and enroll the single face in it under ``name``.

        Raises:
            NoFaceDetected: If the frame holds no face.
            MultipleFacesDetected: If the frame holds more than one face.
            EmbeddingUnavailable: If the generator fails.
        """
        cleaned = normalize_name(name)
        image_source, face_locator, generator = self._pipeline()

        image = image_source.capture()
        faces = face_locator.locate(image)
        if not faces:
            raise NoFaceDetected("No face detected, try again")
        if len(faces) > 1:
            raise MultipleFacesDetected(len(faces))

        embedding = generator.embed(image, faces[0])
        return self.enroll_embedding(cleaned, embedding)

    def enroll_embedding(self, name: str, embedding: ArrayLike) -> EnrollmentRecord:
        """Enroll an already computed embedding and persist the gallery."""
        with self._write_lock:
            previous = self._state.snapshot()
            record = self._state.enroll(name, embedding)
            self._persist(previous)
        return record

    def remove(self, record_id: str) -> EnrollmentRecord:
        with self._write_lock:
            previous = self._state.snapshot()
            record = self._state.remove(record_id)
            self._persist(previous)
        return record

    def remove_name(self, name: str) -> int:
        with self._write_lock:
            previous = self._state.snapshot()
            removed = self._state.remove_name(name)
            if removed:
                self._persist(previous)
        return removed

    def clear(self) -> int:
        with self._write_lock:
            previous = self._state.snapshot()
            removed = self._state.clear()
            self._persist(previous)
        return removed

    # -- Matching -----------------------------------------------------------

    def match(self, embedding: ArrayLike, threshold: float | None = None) -> MatchResult:
        """Match a supplied embedding against the current gallery snapshot."""
        if threshold is None:
            threshold = self._settings.match_threshold
        return find_best_match(
            embedding,
            self._state.snapshot(),
            threshold,
            on_mismatch=self._settings.mismatch_policy,
        )

    def recognize(self) -> MatchResult | None:
        """Capture a frame and identify its largest face.

        Returns None without computing an embedding when recognition is off,
        the gallery is empty, no usable face is found, or the embedding
        interval has not elapsed.
        """
        if not self._state.recognition_active:
            return None
        gallery = self._state.snapshot()
        if not gallery:
            return None

        image_source, face_locator, generator = self._pipeline()
        image = image_source.capture()
        faces = face_locator.locate(image)
        if not faces:
            return None

        face = max(faces, key=lambda box: box.area)
        if face.is_smaller_than(self._settings.min_face_size):
            logger.debug("Face %.0fx%.0f below minimum size, skipping", face.width, face.height)
            return None

        if not self._embedding_due():
            return None

        embedding = generator.embed(image, face)
        result = find_best_match(
            embedding,
            gallery,
            self._settings.match_threshold,
            on_mismatch=self._settings.mismatch_policy,
        )
        if result.accepted:
            logger.info("Recognized %s (score=%.3f)", result.name, result.score)
        else:
            logger.info("No match above threshold (best=%.3f)", result.score)
        return result

    # -- Internal -----------------------------------------------------------

    def _pipeline(self) -> tuple[ImageSource, FaceLocator, EmbeddingGenerator]:
        if self._image_source is None or self._face_locator is None or self._generator is None:
            raise RuntimeError("Capture pipeline is not configured")
        return self._image_source, self._face_locator, self._generator

    def _embedding_due(self) -> bool:
        now = self._clock()
        last = self._last_embedding_at
        if last is not None and now - last < self._settings.min_embedding_interval:
            return False
        self._last_embedding_at = now
        return True

    def _persist(self, previous: Gallery) -> None:
        try:
            self._store.save(self._state.snapshot())
        except StoreError:
            logger.exception("Failed to persist gallery, rolling back")
            self._state.replace(previous)
            raise
