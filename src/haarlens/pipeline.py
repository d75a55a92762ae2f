#!/usr/bin/env python3
"""
Multi-Detector Pipeline
=======================
One uploaded image in, one report out.

Pipeline stages:
1. Decode raw bytes to RGBA (aborts the run on failure)
2. Grayscale (once)
3. Canny edges from that grayscale buffer
4. For each configured detector, in order:
   ensure model asset loaded → cascade detection → annotated copy

A detector failure is recorded in the report and never stops the others.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

from .core.config import DetectorConfig, PipelineConfig
from .core.errors import DecodeError, DetectError, LoadError
from .core.events import EventBus, EventLogger, EventType
from .core.models import DetectorOutcome, ImageBuffer, ModelAsset, PipelineReport
from .core.protocols import AssetFetcher, VisionEngine
from .lifecycle.state_machine import DetectorStateMachine, StateTransition, TransitionType
from .perception.detection import DetectionPipeline
from .perception.engine import OpenCVEngine
from .storage.asset_store import ModelAssetStore
from .storage.fetchers import build_fetcher

logger = logging.getLogger(__name__)


_TRANSITION_EVENTS = {
    TransitionType.LOAD: EventType.DETECTOR_LOADING,
    TransitionType.DETECT: EventType.DETECTOR_DETECTING,
    TransitionType.SUCCEED: EventType.DETECTOR_SUCCEEDED,
    TransitionType.FAIL: EventType.DETECTOR_FAILED,
}


# =============================================================================
# PIPELINE STATISTICS
# =============================================================================

@dataclass
class PipelineStats:
    """Pipeline statistics across runs."""
    runs: int = 0
    decode_failures: int = 0
    detector_successes: int = 0
    detector_failures: int = 0
    regions_found: int = 0

    # Timing averages (ms)
    avg_decode_ms: float = 0.0
    avg_grayscale_ms: float = 0.0
    avg_edges_ms: float = 0.0
    avg_detectors_ms: float = 0.0
    avg_total_ms: float = 0.0

    def update_timing(
        self,
        decode_ms: float,
        grayscale_ms: float,
        edges_ms: float,
        detectors_ms: float,
        total_ms: float
    ) -> None:
        """Update timing averages using exponential moving average."""
        alpha = 0.1
        self.avg_decode_ms = alpha * decode_ms + (1 - alpha) * self.avg_decode_ms
        self.avg_grayscale_ms = alpha * grayscale_ms + (1 - alpha) * self.avg_grayscale_ms
        self.avg_edges_ms = alpha * edges_ms + (1 - alpha) * self.avg_edges_ms
        self.avg_detectors_ms = alpha * detectors_ms + (1 - alpha) * self.avg_detectors_ms
        self.avg_total_ms = alpha * total_ms + (1 - alpha) * self.avg_total_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runs": self.runs,
            "decode_failures": self.decode_failures,
            "detector_successes": self.detector_successes,
            "detector_failures": self.detector_failures,
            "regions_found": self.regions_found,
            "avg_decode_ms": round(self.avg_decode_ms, 2),
            "avg_grayscale_ms": round(self.avg_grayscale_ms, 2),
            "avg_edges_ms": round(self.avg_edges_ms, 2),
            "avg_detectors_ms": round(self.avg_detectors_ms, 2),
            "avg_total_ms": round(self.avg_total_ms, 2),
        }


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class MultiDetectorOrchestrator:
    """
    Runs grayscale, edges and every configured detector against one image.

    Components are injectable; by default everything is built from the
    config on top of OpenCV.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        engine: Optional[VisionEngine] = None,
        asset_store: Optional[ModelAssetStore] = None,
        event_bus: Optional[EventBus] = None,
        fetcher: Optional[AssetFetcher] = None
    ):
        """
        Initialize orchestrator.

        Args:
            config: Pipeline configuration
            engine: Vision engine (OpenCVEngine if not provided)
            asset_store: Model store (built from config.assets if not provided)
            event_bus: Event bus (creates a synchronous one if not provided)
            fetcher: Payload source for the default store (overrides config.assets.source)
        """
        self.config = config or PipelineConfig()
        self._owns_engine = engine is None
        self.engine = engine or OpenCVEngine()
        self._owns_bus = event_bus is None
        self.event_bus = event_bus or EventBus()

        self.assets = asset_store or ModelAssetStore(
            fetch=fetcher or build_fetcher(self.config.assets),
            register=self.engine.register_model,
            model_name=self.config.assets.model_name,
            on_loaded=self._on_asset_loaded
        )
        self.detection = DetectionPipeline(self.engine, model_name=self.config.assets.model_name)

        self.stats = PipelineStats()
        self._run_id = 0

        if self.config.enable_event_logging:
            self.event_bus.subscribe(None, EventLogger())

        logger.info(
            f"Orchestrator ready: detectors={[d.name for d in self.config.detectors]}, "
            f"assets={self.config.assets.source}"
        )

    def process(
        self,
        raw: bytes,
        detectors: Optional[Sequence[DetectorConfig]] = None
    ) -> PipelineReport:
        """
        Process one uploaded image.

        Args:
            raw: Encoded image bytes (PNG, JPEG, ...)
            detectors: Detectors to run in order (config.detectors if None)

        Returns:
            PipelineReport with grayscale, edges and one outcome per detector

        Raises:
            DecodeError: raw is not a readable image; nothing else ran
            ValueError: detector names or their model files are not unique
        """
        detectors = tuple(self.config.detectors if detectors is None else detectors)
        names = [d.name for d in detectors]
        if len(names) != len(set(names)):
            raise ValueError(f"detector names must be unique, got {names}")
        self.config.assets.check_distinct_models(names)

        self._run_id += 1
        run_id = self._run_id
        start = time.time()
        self.stats.runs += 1

        self._emit(EventType.PIPELINE_STARTED, run_id=run_id, detectors=names, size=len(raw))
        logger.info(f"Run {run_id}: {len(raw)} bytes, detectors={names}")

        # Stage 1: Decode
        t0 = time.time()
        try:
            source = self.engine.decode(raw)
        except DecodeError as e:
            self.stats.decode_failures += 1
            logger.error(f"Run {run_id}: decode failed: {e}")
            self._emit(EventType.DECODE_FAILED, run_id=run_id, reason=str(e))
            raise
        decode_ms = (time.time() - t0) * 1000
        self._emit(EventType.IMAGE_DECODED, run_id=run_id, width=source.width, height=source.height)

        # Stages 2-3: Grayscale once, edges from it
        t1 = time.time()
        try:
            gray = self.engine.to_grayscale(source)
        except Exception:
            source.release()
            raise
        grayscale_ms = (time.time() - t1) * 1000
        self._emit(EventType.GRAYSCALE_READY, run_id=run_id)

        t2 = time.time()
        edge_cfg = self.config.edges
        try:
            edges = self.engine.detect_edges(
                gray,
                edge_cfg.low_threshold,
                edge_cfg.high_threshold,
                edge_cfg.aperture_size,
                edge_cfg.l2_gradient
            )
        except Exception:
            gray.release()
            source.release()
            raise
        edges_ms = (time.time() - t2) * 1000
        self._emit(EventType.EDGES_READY, run_id=run_id)

        # Stage 4: Detectors, strictly one after another
        t3 = time.time()
        outcomes = tuple(self._run_detector(run_id, source, d) for d in detectors)
        detectors_ms = (time.time() - t3) * 1000

        total_ms = (time.time() - start) * 1000
        report = PipelineReport(
            source=source,
            grayscale=gray,
            edges=edges,
            outcomes=outcomes,
            run_id=run_id,
            total_process_time_ms=total_ms
        )

        self.stats.update_timing(decode_ms, grayscale_ms, edges_ms, detectors_ms, total_ms)
        self._emit(EventType.PIPELINE_COMPLETED, **report.to_dict())
        logger.info(
            f"Run {run_id}: done in {total_ms:.1f}ms, "
            f"{len(report.succeeded)} succeeded, {len(report.failed)} failed"
        )
        return report

    def process_file(
        self,
        path: Union[str, Path],
        detectors: Optional[Sequence[DetectorConfig]] = None
    ) -> PipelineReport:
        """Read an image file and process it."""
        return self.process(Path(path).read_bytes(), detectors)

    def _run_detector(self, run_id: int, source: ImageBuffer, detector: DetectorConfig) -> DetectorOutcome:
        """Load then detect; any LoadError/DetectError ends as FAILED."""
        machine = DetectorStateMachine(
            detector.name,
            on_transition=lambda t: self._on_transition(run_id, t)
        )

        machine.begin_loading()
        try:
            self.assets.ensure_loaded(detector.name)
        except LoadError as e:
            machine.fail(e)
        else:
            machine.begin_detecting()
            try:
                annotated = self.detection.detect(
                    source,
                    detector.name,
                    detector.scale_factor,
                    detector.min_neighbors,
                    detector.color
                )
            except DetectError as e:
                machine.fail(e)
            else:
                machine.succeed(annotated)

        outcome = machine.outcome()
        if outcome.failed:
            self.stats.detector_failures += 1
            logger.warning(f"Run {run_id}: detector {detector.name} failed: {outcome.error}")
        else:
            self.stats.detector_successes += 1
            self.stats.regions_found += len(outcome.regions)
        return outcome

    def _on_transition(self, run_id: int, transition: StateTransition) -> None:
        self._emit(
            _TRANSITION_EVENTS[transition.transition_type],
            run_id=run_id,
            detector=transition.detector,
            reason=transition.reason
        )

    def _on_asset_loaded(self, asset: ModelAsset) -> None:
        self._emit(EventType.ASSET_LOADED, name=asset.name, model_name=asset.model_name, size=asset.size)

    def _emit(self, event_type: EventType, **data) -> None:
        self.event_bus.emit_simple(event_type, source="orchestrator", **data)

    def close(self) -> None:
        """Shut down the event bus and engine if this orchestrator created them."""
        if self._owns_bus:
            self.event_bus.shutdown()
        if self._owns_engine:
            self.engine.close()
