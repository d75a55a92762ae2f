#!/usr/bin/env python3
"""
Error taxonomy for the detection pipeline.

Decode errors abort a whole run. Load and detect errors are contained
per detector and recorded in the report.
"""

from typing import Optional


class HaarLensError(Exception):
    """Base class for all pipeline errors."""


class DecodeError(HaarLensError):
    """Input bytes could not be decoded into an image."""


class BufferReleasedError(HaarLensError):
    """Pixel data was accessed after the buffer was released."""


class StateTransitionError(HaarLensError):
    """A detector stage was moved along an illegal transition."""


# =============================================================================
# ASSET LOADING
# =============================================================================

class LoadError(HaarLensError):
    """A classifier-model asset could not be made available."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"{name}: {reason}")
        self.name = name
        self.reason = reason


class FetchFailed(LoadError):
    """The named resource could not be retrieved."""


class RegistrationFailed(LoadError):
    """The vision library rejected the payload."""


# =============================================================================
# DETECTION
# =============================================================================

class DetectError(HaarLensError):
    """A detector failed to produce an annotated image."""

    def __init__(self, detector: str, reason: str, model_name: Optional[str] = None):
        super().__init__(f"{detector}: {reason}")
        self.detector = detector
        self.reason = reason
        self.model_name = model_name


class ClassifierLoadFailed(DetectError):
    """The classifier could not bind to the registered model."""


class DetectionFailed(DetectError):
    """The detection call itself faulted."""
