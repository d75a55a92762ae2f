#!/usr/bin/env python3
"""
haarlens - Haar-cascade detection pipeline.

Decode an uploaded image, convert it to grayscale, run Canny edges and any
number of named cascade detectors (face, eye, smile), drawing one rectangle
per detected region.
"""

from .core import (
    PipelineConfig,
    DetectorConfig,
    EdgeConfig,
    AssetConfig,
    FACE_DETECTOR,
    EYE_DETECTOR,
    SMILE_DETECTOR,
    DEFAULT_DETECTORS,
    ImageBuffer,
    PixelFormat,
    DetectedRegion,
    AnnotatedImage,
    DetectorState,
    DetectorOutcome,
    PipelineReport,
    HaarLensError,
    DecodeError,
    LoadError,
    FetchFailed,
    RegistrationFailed,
    DetectError,
    ClassifierLoadFailed,
    DetectionFailed,
)
from .perception import OpenCVEngine, DetectionPipeline
from .storage import ModelAssetStore
from .pipeline import MultiDetectorOrchestrator, PipelineStats

__version__ = "0.1.0"

__all__ = [
    "PipelineConfig",
    "DetectorConfig",
    "EdgeConfig",
    "AssetConfig",
    "FACE_DETECTOR",
    "EYE_DETECTOR",
    "SMILE_DETECTOR",
    "DEFAULT_DETECTORS",
    "ImageBuffer",
    "PixelFormat",
    "DetectedRegion",
    "AnnotatedImage",
    "DetectorState",
    "DetectorOutcome",
    "PipelineReport",
    "HaarLensError",
    "DecodeError",
    "LoadError",
    "FetchFailed",
    "RegistrationFailed",
    "DetectError",
    "ClassifierLoadFailed",
    "DetectionFailed",
    "OpenCVEngine",
    "DetectionPipeline",
    "ModelAssetStore",
    "MultiDetectorOrchestrator",
    "PipelineStats",
]
