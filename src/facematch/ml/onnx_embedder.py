"""ONNX Runtime embedding generator.

Crops the located face, resizes it to the model input size and runs the
session from ``OnnxModelManager``. The network itself is treated as opaque:
any failure inside it surfaces as ``EmbeddingUnavailable``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from facematch.errors import EmbeddingUnavailable
from facematch.ml.model_manager import LOCAL_MODEL_NAME, get_spec

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from facematch.ml.face_locator import FaceBox
    from facematch.ml.model_manager import OnnxModelManager

logger = logging.getLogger(__name__)

FACE_INPUT_SIZE: int = 112
INPUT_MEAN: float = 127.5
INPUT_STD: float = 127.5


def crop_face(image: NDArray[np.uint8], face: FaceBox) -> NDArray[np.uint8]:
    """Cut the face box out of ``image``, clamped to the image bounds."""
    height, width = image.shape[:2]
    x0 = max(round(face.x), 0)
    y0 = max(round(face.y), 0)
    x1 = min(round(face.x + face.width), width)
    y1 = min(round(face.y + face.height), height)
    if x1 <= x0 or y1 <= y0:
        raise EmbeddingUnavailable(f"Face box {face} lies outside the {width}x{height} image")
    return image[y0:y1, x0:x1]


def resize_nearest(crop: NDArray[np.uint8], size: int) -> NDArray[np.uint8]:
    height, width = crop.shape[:2]
    rows = (np.arange(size) * height / size).astype(np.intp)
    cols = (np.arange(size) * width / size).astype(np.intp)
    return crop[rows[:, None], cols]


def to_input_tensor(crop: NDArray[np.uint8]) -> NDArray[np.float32]:
    """Convert an HxWx3 crop into a 1x3xSxS normalized float32 tensor."""
    resized = resize_nearest(crop, FACE_INPUT_SIZE).astype(np.float32)
    normalized = (resized - INPUT_MEAN) / INPUT_STD
    return np.ascontiguousarray(normalized.transpose(2, 0, 1)[np.newaxis])


class OnnxEmbeddingGenerator:
    """EmbeddingGenerator backed by an ONNX Runtime session."""

    def __init__(self, manager: OnnxModelManager, embedding_dim: int | None = None) -> None:
        self._manager = manager
        self._model_name = manager.active_model
        if embedding_dim is None and self._model_name != LOCAL_MODEL_NAME:
            embedding_dim = get_spec(self._model_name).embedding_dim
        self._embedding_dim = embedding_dim

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def embedding_dim(self) -> int:
        if self._embedding_dim is None:
            session = self._manager.get_session(self._model_name)
            self._embedding_dim = int(session.get_outputs()[0].shape[-1])
        return self._embedding_dim

    def embed(self, image: NDArray[np.uint8], face: FaceBox) -> NDArray[np.float32]:
        tensor = to_input_tensor(crop_face(image, face))

        try:
            session = self._manager.get_session(self._model_name)
            input_name = session.get_inputs()[0].name
            outputs = session.run(None, {input_name: tensor})
        except Exception as exc:
            raise EmbeddingUnavailable(f"{self._model_name} failed to produce an embedding: {exc}") from exc

        vector = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if vector.size != self.embedding_dim:
            raise EmbeddingUnavailable(
                f"{self._model_name} returned {vector.size} values, expected {self.embedding_dim}"
            )
        if not np.all(np.isfinite(vector)):
            raise EmbeddingUnavailable(f"{self._model_name} returned non-finite values")

        logger.debug("Computed %d-d embedding with %s", vector.size, self._model_name)
        return vector
