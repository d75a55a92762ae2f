# Perception - OpenCV engine and cascade detection
from .engine import OpenCVEngine, OpenCVCascade
from .detection import DetectionPipeline, STROKE_WIDTH

__all__ = ["OpenCVEngine", "OpenCVCascade", "DetectionPipeline", "STROKE_WIDTH"]
