#!/usr/bin/env python3
"""
Protocol definitions for the vision library boundary.

Using Python's Protocol for structural subtyping, so the OpenCV engine and
test doubles can be swapped without inheritance.
"""

from typing import Protocol, runtime_checkable, Callable, List, Tuple

from .models import Color, DetectedRegion, ImageBuffer


# =============================================================================
# CLASSIFIER HANDLE
# =============================================================================

@runtime_checkable
class CascadeClassifier(Protocol):
    """A cascade classifier instance. Must be closed by its owner."""

    def load(self, model_name: str) -> bool:
        """
        Bind to a model registered in the engine's namespace.

        Args:
            model_name: Name used with VisionEngine.register_model

        Returns:
            True if the model was loaded
        """
        ...

    def detect_multi_scale(
        self,
        gray: ImageBuffer,
        scale_factor: float,
        min_neighbors: int
    ) -> List[DetectedRegion]:
        """
        Run multi-scale detection over a grayscale buffer.

        Returns:
            Regions in the order the library produced them
        """
        ...

    def close(self) -> None:
        """Release the native classifier."""
        ...


# =============================================================================
# VISION ENGINE
# =============================================================================

@runtime_checkable
class VisionEngine(Protocol):
    """Interface over the external vision library."""

    def decode(self, data: bytes) -> ImageBuffer:
        """
        Decode encoded image bytes (PNG, JPEG, ...) into an RGBA buffer.

        Raises:
            DecodeError: if the bytes are not a readable image
        """
        ...

    def encode(self, image: ImageBuffer, ext: str = ".png") -> bytes:
        """Encode a buffer back to image bytes."""
        ...

    def to_grayscale(self, image: ImageBuffer) -> ImageBuffer:
        """RGBA -> single-channel grayscale, same width and height."""
        ...

    def detect_edges(
        self,
        gray: ImageBuffer,
        low_threshold: float,
        high_threshold: float,
        aperture_size: int = 3,
        l2_gradient: bool = False
    ) -> ImageBuffer:
        """Canny edge detection on a grayscale buffer."""
        ...

    def create_classifier(self) -> CascadeClassifier:
        """Create an unbound classifier handle."""
        ...

    def draw_rectangle(
        self,
        image: ImageBuffer,
        top_left: Tuple[int, int],
        bottom_right: Tuple[int, int],
        color: Color,
        thickness: int
    ) -> None:
        """Draw a rectangle in place on a color buffer."""
        ...

    def register_model(self, model_name: str, payload: bytes) -> None:
        """
        Make a payload available to CascadeClassifier.load under model_name.

        Raises:
            FileExistsError: if model_name is already registered
        """
        ...

    def close(self) -> None:
        """Drop registered models owned by the engine."""
        ...


# Fetches a named model payload; raises on failure
AssetFetcher = Callable[[str], bytes]

# Registers a payload under a model name; raises on failure
AssetRegistrar = Callable[[str, bytes], None]
