#!/usr/bin/env python3
"""
Core data models for the detection pipeline.

Results are immutable (frozen dataclasses). ImageBuffer is the exception:
it owns pixel memory and has to be released by whichever stage allocated it.
"""

from __future__ import annotations
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union, TYPE_CHECKING

import numpy as np

from .errors import BufferReleasedError, DetectError, LoadError

if TYPE_CHECKING:
    from ..lifecycle.state_machine import StateTransition


Color = Tuple[int, int, int, int]  # RGBA


# =============================================================================
# IMAGE BUFFERS
# =============================================================================

class PixelFormat(Enum):
    """Pixel layouts the pipeline works with."""
    RGBA = 4
    GRAY = 1

    @property
    def channels(self) -> int:
        return self.value


class ImageBuffer:
    """
    Decoded raster image backed by a contiguous uint8 array.

    RGBA buffers are (height, width, 4), GRAY buffers are (height, width).
    """

    def __init__(self, pixels: np.ndarray, pixel_format: Optional[PixelFormat] = None):
        if not isinstance(pixels, np.ndarray):
            raise TypeError(f"pixels must be a numpy array, got {type(pixels).__name__}")
        if pixels.dtype != np.uint8:
            raise ValueError(f"pixels must be uint8, got {pixels.dtype}")

        if pixel_format is None:
            pixel_format = _infer_format(pixels)

        if pixel_format == PixelFormat.GRAY:
            if pixels.ndim == 3 and pixels.shape[2] == 1:
                pixels = pixels[:, :, 0]
            if pixels.ndim != 2:
                raise ValueError(f"GRAY buffer must be 2-D, got shape {pixels.shape}")
        elif pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"RGBA buffer must be (h, w, 4), got shape {pixels.shape}")

        if pixels.shape[0] <= 0 or pixels.shape[1] <= 0:
            raise ValueError(f"Image dimensions must be positive, got {pixels.shape[:2]}")

        self._pixels: Optional[np.ndarray] = np.ascontiguousarray(pixels)
        self._format = pixel_format
        self._height = int(pixels.shape[0])
        self._width = int(pixels.shape[1])

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise BufferReleasedError(
                f"{self._format.name} buffer {self._width}x{self._height} already released"
            )
        return self._pixels

    @property
    def format(self) -> PixelFormat:
        return self._format

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def channels(self) -> int:
        return self._format.channels

    @property
    def nbytes(self) -> int:
        return self.pixels.nbytes

    @property
    def released(self) -> bool:
        return self._pixels is None

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height)"""
        return (self._width, self._height)

    def copy(self) -> ImageBuffer:
        """Independent buffer with the same pixels."""
        return ImageBuffer(self.pixels.copy(), self._format)

    def release(self) -> None:
        """Drop the pixel memory. Safe to call more than once."""
        self._pixels = None

    def same_pixels(self, other: ImageBuffer) -> bool:
        return (
            self._format == other.format
            and self.size == other.size
            and bool(np.array_equal(self.pixels, other.pixels))
        )

    def __enter__(self) -> ImageBuffer:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"ImageBuffer({self._format.name}, {self._width}x{self._height}, {state})"


def _infer_format(pixels: np.ndarray) -> PixelFormat:
    if pixels.ndim == 2 or (pixels.ndim == 3 and pixels.shape[2] == 1):
        return PixelFormat.GRAY
    if pixels.ndim == 3 and pixels.shape[2] == 4:
        return PixelFormat.RGBA
    raise ValueError(f"Cannot infer pixel format from shape {pixels.shape}")


# =============================================================================
# MODEL ASSETS
# =============================================================================

@dataclass(frozen=True)
class ModelAsset:
    """A classifier-model payload registered with the vision library."""
    name: str            # Detector name, e.g. "face"
    model_name: str      # Name inside the engine's model namespace
    payload: bytes = field(repr=False)
    loaded_at: float = field(default_factory=time.time)

    @property
    def size(self) -> int:
        return len(self.payload)


# =============================================================================
# DETECTIONS
# =============================================================================

@dataclass(frozen=True)
class DetectedRegion:
    """One detection in image coordinates (x, y, width, height)."""
    x: int
    y: int
    width: int
    height: int

    def __post_init__(self):
        if self.x < 0 or self.y < 0:
            raise ValueError(f"Region origin must be non-negative, got ({self.x}, {self.y})")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Region size must be positive, got {self.width}x{self.height}")

    @property
    def top_left(self) -> Tuple[int, int]:
        return (self.x, self.y)

    @property
    def bottom_right(self) -> Tuple[int, int]:
        return (self.x + self.width, self.y + self.height)

    @property
    def area(self) -> int:
        return self.width * self.height

    def fits(self, width: int, height: int) -> bool:
        """Check the region lies inside an image of the given size."""
        return self.x + self.width <= width and self.y + self.height <= height

    def to_xywh(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    @classmethod
    def from_xywh(cls, x, y, w, h) -> DetectedRegion:
        """Create from any (x, y, w, h) numbers, e.g. a detectMultiScale row."""
        return cls(x=int(x), y=int(y), width=int(w), height=int(h))


@dataclass(frozen=True)
class AnnotatedImage:
    """Color image with one rectangle per detected region."""
    detector: str
    image: ImageBuffer
    regions: Tuple[DetectedRegion, ...] = field(default_factory=tuple)
    color: Color = (255, 0, 0, 255)
    thickness: int = 2
    process_time_ms: float = 0.0

    @property
    def count(self) -> int:
        return len(self.regions)

    @property
    def detected(self) -> bool:
        return self.count > 0


# =============================================================================
# ORCHESTRATION RESULTS
# =============================================================================

class DetectorState(Enum):
    """Lifecycle of one detector within a single run."""
    PENDING = auto()
    LOADING = auto()
    DETECTING = auto()
    SUCCEEDED = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (DetectorState.SUCCEEDED, DetectorState.FAILED)


@dataclass(frozen=True)
class DetectorOutcome:
    """
    Terminal result of one detector.

    SUCCEEDED carries the annotated image (possibly with zero regions),
    FAILED carries the error that stopped it.
    """
    name: str
    state: DetectorState
    annotated: Optional[AnnotatedImage] = None
    error: Optional[Union[LoadError, DetectError]] = None
    transitions: Tuple["StateTransition", ...] = field(default_factory=tuple)
    process_time_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state == DetectorState.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.state == DetectorState.FAILED

    @property
    def regions(self) -> Tuple[DetectedRegion, ...]:
        return self.annotated.regions if self.annotated else ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.name,
            "regions": [r.to_xywh() for r in self.regions],
            "error": type(self.error).__name__ if self.error else None,
            "reason": getattr(self.error, "reason", None),
            "process_time_ms": round(self.process_time_ms, 2),
        }


@dataclass(frozen=True)
class PipelineReport:
    """Everything one orchestration run produced."""
    source: ImageBuffer
    grayscale: ImageBuffer
    edges: ImageBuffer
    outcomes: Tuple[DetectorOutcome, ...] = field(default_factory=tuple)
    run_id: int = 0
    total_process_time_ms: float = 0.0

    @property
    def succeeded(self) -> List[DetectorOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> List[DetectorOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def detector_names(self) -> List[str]:
        return [o.name for o in self.outcomes]

    def outcome(self, name: str) -> DetectorOutcome:
        for o in self.outcomes:
            if o.name == name:
                return o
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        """Summary for logging/serialization (no pixels)."""
        return {
            "run_id": self.run_id,
            "width": self.source.width,
            "height": self.source.height,
            "detectors": [o.to_dict() for o in self.outcomes],
            "total_process_time_ms": round(self.total_process_time_ms, 2),
        }

    def save(self, directory: Union[str, Path]) -> List[Path]:
        """
        Write every canvas of the run as PNG.

        Files: original.png, grayscale.png, edges.png and <detector>.png for
        each detector that succeeded.

        Returns:
            Paths written, in that order
        """
        import cv2

        out_dir = Path(directory)
        out_dir.mkdir(parents=True, exist_ok=True)

        images = [
            ("original", self.source),
            ("grayscale", self.grayscale),
            ("edges", self.edges),
        ]
        images.extend((o.name, o.annotated.image) for o in self.succeeded)

        written = []
        for stem, image in images:
            path = out_dir / f"{stem}.png"
            pixels = image.pixels
            if image.format == PixelFormat.RGBA:
                pixels = cv2.cvtColor(pixels, cv2.COLOR_RGBA2BGRA)
            if not cv2.imwrite(str(path), pixels):
                raise OSError(f"Could not write {path}")
            written.append(path)
        return written
