"""Embedding generator capability.

Implementations: ONNX Runtime (see ``onnx_embedder``), or any test fake
returning deterministic vectors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from facematch.ml.face_locator import FaceBox


class EmbeddingGenerator(Protocol):
    """Protocol for face embedding models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    @property
    def embedding_dim(self) -> int:
        """Return the embedding dimensionality (e.g., 128, 192, 512)."""
        ...

    def embed(self, image: NDArray[np.uint8], face: FaceBox) -> NDArray[np.float32]:
        """Generate an embedding for one face.

        Args:
            image: HxWx3 RGB uint8 array the face was located in.
            face: Location of the face within ``image``.

        Returns:
            1-D float32 vector of length ``embedding_dim``.

        Raises:
            EmbeddingUnavailable: If no embedding could be produced.
        """
        ...
