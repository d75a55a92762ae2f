#!/usr/bin/env python3
"""
Pipeline configuration with validation.

All configs are frozen dataclasses for immutability.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Iterable, Optional, Tuple

from .models import Color


# =============================================================================
# COMPONENT CONFIGS
# =============================================================================

@dataclass(frozen=True)
class EdgeConfig:
    """Canny edge detection configuration."""
    low_threshold: float = 50.0
    high_threshold: float = 150.0
    aperture_size: int = 3        # Sobel aperture: 3, 5 or 7
    l2_gradient: bool = False

    def __post_init__(self):
        if self.low_threshold < 0 or self.high_threshold < 0:
            raise ValueError(
                f"thresholds must be >= 0, got {self.low_threshold}/{self.high_threshold}"
            )
        if self.aperture_size not in (3, 5, 7):
            raise ValueError(f"aperture_size must be 3, 5 or 7, got {self.aperture_size}")


@dataclass(frozen=True)
class DetectorConfig:
    """One cascade detector and its detectMultiScale parameters."""
    name: str
    scale_factor: float = 1.1     # Step between pyramid scales, > 1
    min_neighbors: int = 3        # Higher = fewer false positives, lower recall
    color: Color = (255, 0, 0, 255)

    def __post_init__(self):
        if not self.name:
            raise ValueError("detector name must not be empty")
        if self.scale_factor <= 1.0:
            raise ValueError(f"scale_factor must be > 1.0, got {self.scale_factor}")
        if self.min_neighbors < 0:
            raise ValueError(f"min_neighbors must be >= 0, got {self.min_neighbors}")
        if len(self.color) != 4 or not all(0 <= c <= 255 for c in self.color):
            raise ValueError(f"color must be 4 RGBA values in 0-255, got {self.color}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectorConfig":
        data = dict(data)
        if "color" in data:
            data["color"] = tuple(data["color"])
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "scale_factor": self.scale_factor,
            "min_neighbors": self.min_neighbors,
            "color": list(self.color),
        }


ASSET_SOURCES = ("opencv", "directory", "http")


def default_model_name(detector_name: str) -> str:
    """Model file a detector uses when no explicit mapping exists."""
    return f"haar_{detector_name}.xml"


@dataclass(frozen=True)
class AssetConfig:
    """Where classifier-model payloads come from."""
    source: str = "opencv"        # opencv, directory or http
    base_url: str = "http://localhost:3000"
    directory: str = "public"
    files: Dict[str, str] = field(default_factory=lambda: {"face": "haar_face.xml"})
    timeout: float = 10.0         # Seconds, http only

    def __post_init__(self):
        if self.source not in ASSET_SOURCES:
            raise ValueError(f"source must be one of {ASSET_SOURCES}, got {self.source!r}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")

    def model_name(self, name: str) -> str:
        """Resource/model file name for a detector, e.g. face -> haar_face.xml."""
        return self.files.get(name, default_model_name(name))

    def check_distinct_models(self, detector_names: Iterable[str]) -> None:
        """Every detector must load its own model file."""
        owners: Dict[str, str] = {}
        for name in detector_names:
            model_name = self.model_name(name)
            if model_name in owners:
                raise ValueError(
                    f"detectors {owners[model_name]!r} and {name!r} both map to {model_name}"
                )
            owners[model_name] = name


# =============================================================================
# DETECTOR PRESETS
# =============================================================================

FACE_DETECTOR = DetectorConfig(name="face", scale_factor=1.1, min_neighbors=3,
                               color=(255, 0, 0, 255))
EYE_DETECTOR = DetectorConfig(name="eye", scale_factor=1.1, min_neighbors=3,
                              color=(0, 255, 0, 255))
# Smile cascades fire a lot; the stricter pair keeps false positives down
SMILE_DETECTOR = DetectorConfig(name="smile", scale_factor=1.7, min_neighbors=22,
                                color=(0, 0, 255, 255))

DEFAULT_DETECTORS: Tuple[DetectorConfig, ...] = (FACE_DETECTOR, EYE_DETECTOR, SMILE_DETECTOR)


# =============================================================================
# PIPELINE CONFIG
# =============================================================================

@dataclass(frozen=True)
class PipelineConfig:
    """Complete pipeline configuration."""
    edges: EdgeConfig = field(default_factory=EdgeConfig)
    assets: AssetConfig = field(default_factory=AssetConfig)
    detectors: Tuple[DetectorConfig, ...] = DEFAULT_DETECTORS

    enable_event_logging: bool = False   # Log every pipeline event

    def __post_init__(self):
        names = [d.name for d in self.detectors]
        if len(names) != len(set(names)):
            raise ValueError(f"detector names must be unique, got {names}")
        self.assets.check_distinct_models(names)

    def detector(self, name: str) -> Optional[DetectorConfig]:
        for d in self.detectors:
            if d.name == name:
                return d
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Create config from dictionary (e.g., YAML file)."""
        detectors = data.get("detectors")
        return cls(
            edges=EdgeConfig(**data.get("edges", {})),
            assets=AssetConfig(**data.get("assets", {})),
            detectors=(
                tuple(DetectorConfig.from_dict(d) for d in detectors)
                if detectors is not None else DEFAULT_DETECTORS
            ),
            enable_event_logging=data.get("enable_event_logging", False),
        )

    @classmethod
    def from_yaml(cls, path: str) -> "PipelineConfig":
        """Load config from YAML file."""
        import yaml
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "edges": {
                "low_threshold": self.edges.low_threshold,
                "high_threshold": self.edges.high_threshold,
                "aperture_size": self.edges.aperture_size,
                "l2_gradient": self.edges.l2_gradient,
            },
            "assets": {
                "source": self.assets.source,
                "base_url": self.assets.base_url,
                "directory": self.assets.directory,
                "files": dict(self.assets.files),
                "timeout": self.assets.timeout,
            },
            "detectors": [d.to_dict() for d in self.detectors],
            "enable_event_logging": self.enable_event_logging,
        }


# =============================================================================
# DEFAULT CONFIGS
# =============================================================================

# Single eye cascade served from the web root as /haar_face.xml
EYES_ONLY_CONFIG = PipelineConfig(
    assets=AssetConfig(source="http", files={"eye": "haar_face.xml"}),
    detectors=(DetectorConfig(name="eye", color=(255, 0, 0, 255)),),
)

# Bundled OpenCV cascades, all three detectors
FACE_FEATURES_CONFIG = PipelineConfig(
    assets=AssetConfig(source="opencv"),
    detectors=DEFAULT_DETECTORS,
)
