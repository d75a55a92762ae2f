#!/usr/bin/env python3
"""
Detector lifecycle for haarlens.

Per-run state machine for each configured detector.
"""

from .state_machine import DetectorStateMachine, StateTransition, TransitionType

__all__ = [
    "DetectorStateMachine",
    "StateTransition",
    "TransitionType",
]
