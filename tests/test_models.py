#!/usr/bin/env python3
"""
Tests for core data models: image buffers, regions, reports.
"""

import sys
import tempfile
import unittest
from pathlib import Path

import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from haarlens.core.errors import BufferReleasedError, FetchFailed
from haarlens.core.models import (
    AnnotatedImage, DetectedRegion, DetectorOutcome, DetectorState,
    ImageBuffer, PipelineReport, PixelFormat
)


class TestImageBuffer(unittest.TestCase):
    """Test ImageBuffer invariants and ownership."""

    def test_rgba_dimensions(self):
        """RGBA buffer reports width, height and 4 channels."""
        buf = ImageBuffer(np.zeros((40, 60, 4), dtype=np.uint8))
        self.assertEqual(buf.format, PixelFormat.RGBA)
        self.assertEqual(buf.size, (60, 40))
        self.assertEqual(buf.channels, 4)
        self.assertEqual(buf.nbytes, 60 * 40 * 4)

    def test_gray_single_channel_squeezed(self):
        """(h, w, 1) arrays become 2-D gray buffers."""
        buf = ImageBuffer(np.zeros((10, 20, 1), dtype=np.uint8))
        self.assertEqual(buf.format, PixelFormat.GRAY)
        self.assertEqual(buf.pixels.shape, (10, 20))
        self.assertEqual(buf.nbytes, 10 * 20)

    def test_rejects_empty(self):
        """Zero-sized images are invalid."""
        with self.assertRaises(ValueError):
            ImageBuffer(np.zeros((0, 10, 4), dtype=np.uint8))

    def test_rejects_bgr(self):
        """Three-channel arrays are not a supported layout."""
        with self.assertRaises(ValueError):
            ImageBuffer(np.zeros((10, 10, 3), dtype=np.uint8))

    def test_rejects_float(self):
        """Only uint8 pixels are accepted."""
        with self.assertRaises(ValueError):
            ImageBuffer(np.zeros((10, 10), dtype=np.float32))

    def test_format_mismatch(self):
        """Declaring GRAY for an RGBA array fails."""
        with self.assertRaises(ValueError):
            ImageBuffer(np.zeros((10, 10, 4), dtype=np.uint8), PixelFormat.GRAY)

    def test_non_contiguous_made_contiguous(self):
        """Strided views are copied into contiguous memory."""
        base = np.zeros((20, 20, 4), dtype=np.uint8)
        buf = ImageBuffer(base[::2, ::2])
        self.assertTrue(buf.pixels.flags["C_CONTIGUOUS"])

    def test_copy_is_independent(self):
        """Writing to a copy leaves the original alone."""
        buf = ImageBuffer(np.zeros((5, 5, 4), dtype=np.uint8))
        dup = buf.copy()
        dup.pixels[0, 0] = 255
        self.assertEqual(int(buf.pixels[0, 0, 0]), 0)
        self.assertFalse(buf.same_pixels(dup))

    def test_release(self):
        """Released buffers refuse pixel access but keep their size."""
        buf = ImageBuffer(np.zeros((5, 5), dtype=np.uint8))
        buf.release()
        buf.release()
        self.assertTrue(buf.released)
        self.assertEqual(buf.size, (5, 5))
        with self.assertRaises(BufferReleasedError):
            _ = buf.pixels

    def test_context_manager_releases(self):
        """Leaving a with-block releases the buffer."""
        with ImageBuffer(np.zeros((5, 5), dtype=np.uint8)) as buf:
            self.assertFalse(buf.released)
        self.assertTrue(buf.released)


class TestDetectedRegion(unittest.TestCase):
    """Test DetectedRegion invariants."""

    def test_corners(self):
        """Corners follow (x, y) and (x + w, y + h)."""
        r = DetectedRegion(10, 20, 30, 40)
        self.assertEqual(r.top_left, (10, 20))
        self.assertEqual(r.bottom_right, (40, 60))
        self.assertEqual(r.area, 1200)

    def test_zero_size_rejected(self):
        with self.assertRaises(ValueError):
            DetectedRegion(0, 0, 0, 10)

    def test_negative_origin_rejected(self):
        with self.assertRaises(ValueError):
            DetectedRegion(-1, 0, 5, 5)

    def test_fits(self):
        """Region touching the far edge still fits."""
        r = DetectedRegion(70, 70, 30, 30)
        self.assertTrue(r.fits(100, 100))
        self.assertFalse(r.fits(99, 100))

    def test_from_numpy_row(self):
        """detectMultiScale rows (numpy ints) convert to plain ints."""
        row = np.array([1, 2, 3, 4], dtype=np.int32)
        r = DetectedRegion.from_xywh(*row)
        self.assertEqual(r.to_xywh(), (1, 2, 3, 4))
        self.assertIsInstance(r.x, int)


class TestPipelineReport(unittest.TestCase):
    """Test report lookups and serialization."""

    def _report(self):
        rgba = ImageBuffer(np.zeros((8, 8, 4), dtype=np.uint8))
        gray = ImageBuffer(np.zeros((8, 8), dtype=np.uint8))
        ok = DetectorOutcome(
            name="face",
            state=DetectorState.SUCCEEDED,
            annotated=AnnotatedImage(detector="face", image=rgba.copy(),
                                     regions=(DetectedRegion(1, 1, 2, 2),))
        )
        bad = DetectorOutcome(
            name="eye",
            state=DetectorState.FAILED,
            error=FetchFailed("eye", "404")
        )
        return PipelineReport(source=rgba, grayscale=gray, edges=gray.copy(),
                              outcomes=(ok, bad), run_id=3)

    def test_lookup(self):
        report = self._report()
        self.assertEqual(report.detector_names, ["face", "eye"])
        self.assertTrue(report.outcome("face").succeeded)
        self.assertTrue(report.outcome("eye").failed)
        with self.assertRaises(KeyError):
            report.outcome("smile")

    def test_to_dict(self):
        """Summary carries states, regions and error names."""
        d = self._report().to_dict()
        self.assertEqual(d["run_id"], 3)
        self.assertEqual(d["detectors"][0]["regions"], [(1, 1, 2, 2)])
        self.assertEqual(d["detectors"][1]["state"], "FAILED")
        self.assertEqual(d["detectors"][1]["error"], "FetchFailed")
        self.assertEqual(d["detectors"][1]["reason"], "404")

    def test_failed_outcome_has_no_regions(self):
        self.assertEqual(self._report().outcome("eye").regions, ())

    def test_save_writes_canvases(self):
        """Original, grayscale, edges and each successful detector are saved."""
        with tempfile.TemporaryDirectory() as tmp:
            paths = self._report().save(tmp)
            names = [p.name for p in paths]
            self.assertEqual(names, ["original.png", "grayscale.png", "edges.png", "face.png"])
            for p in paths:
                self.assertTrue(p.is_file())


if __name__ == "__main__":
    unittest.main(verbosity=2)
