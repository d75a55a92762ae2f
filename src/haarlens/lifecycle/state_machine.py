#!/usr/bin/env python3
"""
Detector State Machine.

Each detector in a run moves through:
  PENDING → LOADING → DETECTING → SUCCEEDED
                ↓          ↓
              FAILED ←─────┘

Terminal states are final; a new run builds new machines.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, List, Optional, Tuple, Union

from ..core.errors import DetectError, LoadError, StateTransitionError
from ..core.models import AnnotatedImage, DetectorOutcome, DetectorState

logger = logging.getLogger(__name__)


# =============================================================================
# STATE TRANSITIONS
# =============================================================================

class TransitionType(Enum):
    """Types of state transitions."""
    LOAD = auto()      # PENDING → LOADING
    DETECT = auto()    # LOADING → DETECTING
    SUCCEED = auto()   # DETECTING → SUCCEEDED
    FAIL = auto()      # LOADING/DETECTING → FAILED


_ALLOWED = {
    TransitionType.LOAD: ((DetectorState.PENDING,), DetectorState.LOADING),
    TransitionType.DETECT: ((DetectorState.LOADING,), DetectorState.DETECTING),
    TransitionType.SUCCEED: ((DetectorState.DETECTING,), DetectorState.SUCCEEDED),
    TransitionType.FAIL: ((DetectorState.LOADING, DetectorState.DETECTING), DetectorState.FAILED),
}


@dataclass(frozen=True)
class StateTransition:
    """Record of a state transition."""
    from_state: DetectorState
    to_state: DetectorState
    transition_type: TransitionType
    timestamp: float
    detector: str
    reason: str = ""


# =============================================================================
# STATE MACHINE
# =============================================================================

class DetectorStateMachine:
    """Tracks one detector through a single orchestration run."""

    def __init__(
        self,
        detector: str,
        on_transition: Optional[Callable[[StateTransition], None]] = None
    ):
        self.detector = detector
        self.state = DetectorState.PENDING
        self._on_transition = on_transition
        self._transitions: List[StateTransition] = []
        self._started = time.time()

        self.annotated: Optional[AnnotatedImage] = None
        self.error: Optional[Union[LoadError, DetectError]] = None

    @property
    def transitions(self) -> Tuple[StateTransition, ...]:
        return tuple(self._transitions)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def _transition(self, transition_type: TransitionType, reason: str = "") -> StateTransition:
        sources, target = _ALLOWED[transition_type]
        if self.state not in sources:
            raise StateTransitionError(
                f"{self.detector}: cannot {transition_type.name} from {self.state.name}"
            )

        transition = StateTransition(
            from_state=self.state,
            to_state=target,
            transition_type=transition_type,
            timestamp=time.time(),
            detector=self.detector,
            reason=reason
        )
        self.state = target
        self._transitions.append(transition)

        logger.debug(
            f"Detector {self.detector}: {transition.from_state.name} → {target.name} ({reason})"
        )

        if self._on_transition:
            self._on_transition(transition)
        return transition

    def begin_loading(self) -> StateTransition:
        return self._transition(TransitionType.LOAD, "loading model asset")

    def begin_detecting(self) -> StateTransition:
        return self._transition(TransitionType.DETECT, "running cascade")

    def succeed(self, annotated: AnnotatedImage) -> StateTransition:
        self.annotated = annotated
        return self._transition(TransitionType.SUCCEED, f"{annotated.count} regions")

    def fail(self, error: Union[LoadError, DetectError]) -> StateTransition:
        self.error = error
        return self._transition(TransitionType.FAIL, f"{type(error).__name__}: {error.reason}")

    def outcome(self) -> DetectorOutcome:
        """Freeze the terminal state into a DetectorOutcome."""
        if not self.is_terminal:
            raise StateTransitionError(
                f"{self.detector}: no outcome while {self.state.name}"
            )
        return DetectorOutcome(
            name=self.detector,
            state=self.state,
            annotated=self.annotated,
            error=self.error,
            transitions=self.transitions,
            process_time_ms=(time.time() - self._started) * 1000
        )
