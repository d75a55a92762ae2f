#!/usr/bin/env python3
"""
OpenCV Vision Engine
====================
Thin wrapper over cv2 for everything the pipeline needs:
decode, grayscale, Canny, Haar cascades, rectangles.

Cascade models are registered as files in a per-engine model directory,
which then acts as the namespace CascadeClassifier.load() resolves against.
"""

import logging
import tempfile
import threading
from pathlib import Path
from typing import List, Optional, Tuple

import cv2
import numpy as np

from ..core.errors import DecodeError
from ..core.models import Color, DetectedRegion, ImageBuffer, PixelFormat

logger = logging.getLogger(__name__)


# cv2.imdecode output layout -> conversion to RGBA
_TO_RGBA = {
    1: cv2.COLOR_GRAY2RGBA,
    3: cv2.COLOR_BGR2RGBA,
    4: cv2.COLOR_BGRA2RGBA,
}


def _require_format(image: ImageBuffer, pixel_format: PixelFormat, op: str) -> None:
    if image.format != pixel_format:
        raise ValueError(f"{op} needs a {pixel_format.name} buffer, got {image.format.name}")


class OpenCVCascade:
    """
    cv2.CascadeClassifier bound to an engine's model directory.

    Unbound until load() succeeds. close() drops the native object.
    """

    def __init__(self, model_dir: Path):
        self._model_dir = model_dir
        self._classifier: Optional[cv2.CascadeClassifier] = cv2.CascadeClassifier()
        self.model_name: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._classifier is None

    def load(self, model_name: str) -> bool:
        if self._classifier is None:
            raise ValueError("classifier is closed")

        path = self._model_dir / model_name
        if not path.is_file():
            logger.debug(f"Model {model_name} not registered in {self._model_dir}")
            return False

        try:
            ok = self._classifier.load(str(path))
        except cv2.error as e:
            logger.debug(f"cv2 rejected model {model_name}: {e}")
            return False

        if ok:
            self.model_name = model_name
        return bool(ok)

    def detect_multi_scale(
        self,
        gray: ImageBuffer,
        scale_factor: float,
        min_neighbors: int
    ) -> List[DetectedRegion]:
        if self._classifier is None:
            raise ValueError("classifier is closed")
        _require_format(gray, PixelFormat.GRAY, "detect_multi_scale")

        rects = self._classifier.detectMultiScale(
            gray.pixels,
            scaleFactor=scale_factor,
            minNeighbors=min_neighbors,
            flags=0
        )
        return [DetectedRegion.from_xywh(x, y, w, h) for (x, y, w, h) in rects]

    def close(self) -> None:
        self._classifier = None


class OpenCVEngine:
    """
    Production VisionEngine backed by opencv-python.

    All color buffers are RGBA, matching what a browser canvas hands out.
    """

    def __init__(self, model_dir: Optional[str] = None):
        """
        Initialize engine.

        Args:
            model_dir: Directory used as the model namespace. A fresh
                temporary directory is created when omitted and removed
                by close() or when the engine is garbage collected.
        """
        self._tmp: Optional[tempfile.TemporaryDirectory] = None
        if model_dir is None:
            self._tmp = tempfile.TemporaryDirectory(prefix="haarlens-models-")
            self._model_dir = Path(self._tmp.name)
        else:
            self._model_dir = Path(model_dir)
            self._model_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

        logger.debug(f"OpenCVEngine model namespace: {self._model_dir}")

    @property
    def model_dir(self) -> Path:
        return self._model_dir

    def close(self) -> None:
        """Remove the temporary model namespace. A caller-given model_dir is kept."""
        if self._tmp is not None:
            self._tmp.cleanup()
            self._tmp = None
            logger.debug(f"Removed model namespace {self._model_dir}")

    # -------------------------------------------------------------------------
    # Codec
    # -------------------------------------------------------------------------

    def decode(self, data: bytes) -> ImageBuffer:
        if not data:
            raise DecodeError("empty input")

        raw = np.frombuffer(data, dtype=np.uint8)
        try:
            img = cv2.imdecode(raw, cv2.IMREAD_UNCHANGED)
        except cv2.error as e:
            raise DecodeError(f"cv2.imdecode failed: {e}") from e
        if img is None:
            raise DecodeError(f"unrecognized image data ({len(data)} bytes)")

        # 16-bit PNG/TIFF -> 8-bit
        if img.dtype == np.uint16:
            img = (img >> 8).astype(np.uint8)
        elif img.dtype != np.uint8:
            raise DecodeError(f"unsupported pixel depth {img.dtype}")

        channels = 1 if img.ndim == 2 else img.shape[2]
        if channels not in _TO_RGBA:
            raise DecodeError(f"unsupported channel count {channels}")

        rgba = cv2.cvtColor(img, _TO_RGBA[channels])
        return ImageBuffer(rgba, PixelFormat.RGBA)

    def encode(self, image: ImageBuffer, ext: str = ".png") -> bytes:
        pixels = image.pixels
        if image.format == PixelFormat.RGBA:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_RGBA2BGRA)
        ok, buf = cv2.imencode(ext, pixels)
        if not ok:
            raise ValueError(f"Could not encode image as {ext}")
        return buf.tobytes()

    # -------------------------------------------------------------------------
    # Pixel operations
    # -------------------------------------------------------------------------

    def to_grayscale(self, image: ImageBuffer) -> ImageBuffer:
        _require_format(image, PixelFormat.RGBA, "to_grayscale")
        gray = cv2.cvtColor(image.pixels, cv2.COLOR_RGBA2GRAY)
        return ImageBuffer(gray, PixelFormat.GRAY)

    def detect_edges(
        self,
        gray: ImageBuffer,
        low_threshold: float,
        high_threshold: float,
        aperture_size: int = 3,
        l2_gradient: bool = False
    ) -> ImageBuffer:
        _require_format(gray, PixelFormat.GRAY, "detect_edges")
        edges = cv2.Canny(
            gray.pixels,
            low_threshold,
            high_threshold,
            apertureSize=aperture_size,
            L2gradient=l2_gradient
        )
        return ImageBuffer(edges, PixelFormat.GRAY)

    def draw_rectangle(
        self,
        image: ImageBuffer,
        top_left: Tuple[int, int],
        bottom_right: Tuple[int, int],
        color: Color,
        thickness: int
    ) -> None:
        _require_format(image, PixelFormat.RGBA, "draw_rectangle")
        cv2.rectangle(
            image.pixels,
            (int(top_left[0]), int(top_left[1])),
            (int(bottom_right[0]), int(bottom_right[1])),
            tuple(int(c) for c in color),
            thickness
        )

    # -------------------------------------------------------------------------
    # Cascades
    # -------------------------------------------------------------------------

    def create_classifier(self) -> OpenCVCascade:
        return OpenCVCascade(self._model_dir)

    def register_model(self, model_name: str, payload: bytes) -> None:
        if not model_name or Path(model_name).name != model_name:
            raise ValueError(f"Invalid model name: {model_name!r}")
        if not payload:
            raise ValueError(f"Empty payload for model {model_name}")

        path = self._model_dir / model_name
        with self._lock:
            # "xb" raises FileExistsError on a name collision
            with open(path, "xb") as f:
                f.write(payload)

        logger.debug(f"Registered model {model_name} ({len(payload)} bytes)")

    def is_registered(self, model_name: str) -> bool:
        return (self._model_dir / model_name).is_file()
