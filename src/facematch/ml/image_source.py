"""Image capture capability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray


class ImageSource(Protocol):
    """Protocol for cameras and other frame providers."""

    def capture(self) -> NDArray[np.uint8]:
        """Capture one frame.

        Returns:
            HxWx3 RGB uint8 numpy array.
        """
        ...
