"""Face location capability.

Locating a face is cheap and may run on every frame; computing an embedding
is expensive and is scheduled separately by the recognition service.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray


@dataclass(frozen=True)
class FaceBox:
    """A located face in pixel coordinates of the source image."""

    x: float
    y: float
    width: float
    height: float
    score: float = 1.0

    @property
    def area(self) -> float:
        return self.width * self.height

    def is_smaller_than(self, min_size: float) -> bool:
        return self.width < min_size or self.height < min_size


class FaceLocator(Protocol):
    """Protocol for face detectors."""

    def locate(self, image: NDArray[np.uint8]) -> list[FaceBox]:
        """Locate faces in an image.

        Args:
            image: HxWx3 RGB uint8 array.

        Returns:
            Face boxes, in no particular order.
        """
        ...
