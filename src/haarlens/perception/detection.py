#!/usr/bin/env python3
"""
Cascade Detection
=================
Grayscale -> Haar cascade -> rectangles on a copy of the color image.

The model must already be registered (see storage.ModelAssetStore);
this stage never loads assets on its own.
"""

import logging
import time
from contextlib import ExitStack, closing
from typing import Callable, List

from ..core.config import default_model_name
from ..core.errors import ClassifierLoadFailed, DetectError, DetectionFailed
from ..core.models import AnnotatedImage, Color, DetectedRegion, ImageBuffer, PixelFormat
from ..core.protocols import VisionEngine

logger = logging.getLogger(__name__)


STROKE_WIDTH = 2


class DetectionPipeline:
    """
    Runs one named cascade over one color image.

    Every intermediate (grayscale buffer, classifier, annotated copy) is
    released on every exit path; on failure nothing partially drawn escapes.
    """

    def __init__(
        self,
        engine: VisionEngine,
        model_name: Callable[[str], str] = default_model_name,
        thickness: int = STROKE_WIDTH
    ):
        """
        Initialize pipeline.

        Args:
            engine: Vision library wrapper
            model_name: Maps a detector name to its registered model name
            thickness: Rectangle stroke width in pixels
        """
        self.engine = engine
        self._model_name = model_name
        self.thickness = thickness

    def detect(
        self,
        image: ImageBuffer,
        detector_name: str,
        scale_factor: float = 1.1,
        min_neighbors: int = 3,
        annotation_color: Color = (255, 0, 0, 255)
    ) -> AnnotatedImage:
        """
        Detect regions and draw them on a copy of the image.

        Args:
            image: RGBA buffer (not modified)
            detector_name: Detector whose model was registered beforehand
            scale_factor: Pyramid step, must be > 1.0
            min_neighbors: Candidate merge threshold, must be >= 0
            annotation_color: RGBA rectangle color

        Returns:
            AnnotatedImage with regions in detector order

        Raises:
            ClassifierLoadFailed: model could not be bound
            DetectionFailed: detection or drawing faulted
        """
        if scale_factor <= 1.0:
            raise ValueError(f"scale_factor must be > 1.0, got {scale_factor}")
        if min_neighbors < 0:
            raise ValueError(f"min_neighbors must be >= 0, got {min_neighbors}")
        if image.format != PixelFormat.RGBA:
            raise ValueError(f"detect needs an RGBA image, got {image.format.name}")

        model_name = self._model_name(detector_name)
        start = time.time()

        with ExitStack() as stack:
            try:
                gray = stack.enter_context(self.engine.to_grayscale(image))
            except Exception as e:
                raise DetectionFailed(detector_name, f"grayscale failed: {e}", model_name) from e

            try:
                classifier = self.engine.create_classifier()
            except Exception as e:
                raise ClassifierLoadFailed(
                    detector_name, f"could not create classifier: {e}", model_name
                ) from e
            stack.enter_context(closing(classifier))

            try:
                loaded = classifier.load(model_name)
            except Exception as e:
                raise ClassifierLoadFailed(
                    detector_name, f"loading {model_name} raised: {e}", model_name
                ) from e
            if not loaded:
                raise ClassifierLoadFailed(
                    detector_name, f"could not load model {model_name}", model_name
                )

            regions = self._run_classifier(
                classifier, gray, detector_name, model_name, scale_factor, min_neighbors
            )

            try:
                annotated = image.copy()
            except Exception as e:
                raise DetectionFailed(detector_name, f"could not copy image: {e}", model_name) from e
            try:
                self._draw(annotated, regions, annotation_color)
            except Exception as e:
                annotated.release()
                raise DetectionFailed(detector_name, f"drawing failed: {e}", model_name) from e

        process_time_ms = (time.time() - start) * 1000
        logger.debug(
            f"{detector_name}: {len(regions)} regions in {process_time_ms:.1f}ms "
            f"(scale={scale_factor}, neighbors={min_neighbors})"
        )

        return AnnotatedImage(
            detector=detector_name,
            image=annotated,
            regions=tuple(regions),
            color=annotation_color,
            thickness=self.thickness,
            process_time_ms=process_time_ms
        )

    def _run_classifier(
        self,
        classifier,
        gray: ImageBuffer,
        detector_name: str,
        model_name: str,
        scale_factor: float,
        min_neighbors: int
    ) -> List[DetectedRegion]:
        try:
            regions = list(classifier.detect_multi_scale(gray, scale_factor, min_neighbors))
        except DetectError:
            raise
        except Exception as e:
            raise DetectionFailed(detector_name, f"detection raised: {e}", model_name) from e

        for region in regions:
            if not isinstance(region, DetectedRegion):
                raise DetectionFailed(
                    detector_name, f"malformed region {region!r}", model_name
                )
            if not region.fits(gray.width, gray.height):
                raise DetectionFailed(
                    detector_name,
                    f"region {region.to_xywh()} outside {gray.width}x{gray.height} image",
                    model_name
                )
        return regions

    def _draw(self, image: ImageBuffer, regions: List[DetectedRegion], color: Color) -> None:
        for region in regions:
            self.engine.draw_rectangle(
                image, region.top_left, region.bottom_right, color, self.thickness
            )
