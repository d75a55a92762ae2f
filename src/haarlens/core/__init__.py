#!/usr/bin/env python3
"""
Core module for haarlens.

Contains data models, errors, protocols, configuration, and events.
"""

from .errors import (
    HaarLensError,
    DecodeError,
    BufferReleasedError,
    StateTransitionError,
    LoadError,
    FetchFailed,
    RegistrationFailed,
    DetectError,
    ClassifierLoadFailed,
    DetectionFailed,
)

from .models import (
    Color,
    PixelFormat,
    ImageBuffer,
    ModelAsset,
    DetectedRegion,
    AnnotatedImage,
    DetectorState,
    DetectorOutcome,
    PipelineReport,
)

from .protocols import (
    CascadeClassifier,
    VisionEngine,
    AssetFetcher,
    AssetRegistrar,
)

from .config import (
    EdgeConfig,
    DetectorConfig,
    AssetConfig,
    PipelineConfig,
    FACE_DETECTOR,
    EYE_DETECTOR,
    SMILE_DETECTOR,
    DEFAULT_DETECTORS,
)

from .events import (
    EventType,
    Event,
    EventBus,
    EventLogger,
)

__all__ = [
    # Errors
    "HaarLensError",
    "DecodeError",
    "BufferReleasedError",
    "StateTransitionError",
    "LoadError",
    "FetchFailed",
    "RegistrationFailed",
    "DetectError",
    "ClassifierLoadFailed",
    "DetectionFailed",
    # Models
    "Color",
    "PixelFormat",
    "ImageBuffer",
    "ModelAsset",
    "DetectedRegion",
    "AnnotatedImage",
    "DetectorState",
    "DetectorOutcome",
    "PipelineReport",
    # Protocols
    "CascadeClassifier",
    "VisionEngine",
    "AssetFetcher",
    "AssetRegistrar",
    # Config
    "EdgeConfig",
    "DetectorConfig",
    "AssetConfig",
    "PipelineConfig",
    "FACE_DETECTOR",
    "EYE_DETECTOR",
    "SMILE_DETECTOR",
    "DEFAULT_DETECTORS",
    # Events
    "EventType",
    "Event",
    "EventBus",
    "EventLogger",
]
