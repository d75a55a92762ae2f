#!/usr/bin/env python3
"""
Event definitions and event bus for the detection pipeline.

The orchestrator reports stage progress through events so callers can
observe a run without being coupled to it.
"""

import logging
import threading
import time
from enum import Enum, auto
from dataclasses import dataclass, field
from typing import Callable, List, Dict, Any, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# EVENT TYPES
# =============================================================================

class EventType(Enum):
    """All event types in the pipeline."""

    # Run lifecycle
    PIPELINE_STARTED = auto()
    PIPELINE_COMPLETED = auto()

    # Shared stages
    IMAGE_DECODED = auto()
    DECODE_FAILED = auto()
    GRAYSCALE_READY = auto()
    EDGES_READY = auto()

    # Asset store
    ASSET_LOADED = auto()         # Payload fetched and registered

    # Per-detector lifecycle
    DETECTOR_LOADING = auto()
    DETECTOR_DETECTING = auto()
    DETECTOR_SUCCEEDED = auto()
    DETECTOR_FAILED = auto()


@dataclass
class Event:
    """An event with metadata."""
    type: EventType
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)
    source: str = ""  # Component that generated the event


# =============================================================================
# EVENT BUS
# =============================================================================

# Type alias for event handlers
EventHandler = Callable[[Event], None]


class EventBus:
    """
    Event bus for pipeline progress.

    Features:
    - Subscribe to specific event types or all events
    - Event history for debugging
    - Thread-safe
    """

    def __init__(self, history_size: int = 100):
        """
        Initialize event bus.

        Args:
            history_size: Number of events to keep in history
        """
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []
        self._history: List[Event] = []
        self._history_size = history_size
        self._lock = threading.RLock()
        self._running = True

    def subscribe(
        self,
        event_type: Optional[EventType],
        handler: EventHandler
    ) -> None:
        """
        Subscribe to events.

        Args:
            event_type: Event type to subscribe to, or None for all events
            handler: Callback function(event) -> None
        """
        with self._lock:
            if event_type is None:
                self._global_handlers.append(handler)
            else:
                self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(
        self,
        event_type: Optional[EventType],
        handler: EventHandler
    ) -> bool:
        """
        Unsubscribe from events.

        Returns:
            True if handler was found and removed
        """
        with self._lock:
            handlers = self._global_handlers if event_type is None else self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
            return False

    def emit(self, event: Event) -> None:
        """Emit an event to all subscribers."""
        if not self._running:
            return

        with self._lock:
            self._history.append(event)
            if len(self._history) > self._history_size:
                self._history = self._history[-self._history_size:]

            handlers = list(self._global_handlers)
            handlers.extend(self._handlers.get(event.type, []))

        for handler in handlers:
            self._call_handler(handler, event)

    def emit_simple(
        self,
        event_type: EventType,
        source: str = "",
        **data
    ) -> Event:
        """
        Emit an event with simple data.

        Returns:
            The created event
        """
        event = Event(
            type=event_type,
            timestamp=time.time(),
            data=data,
            source=source
        )
        self.emit(event)
        return event

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        """Call handler; a failing handler must not break the run."""
        try:
            handler(event)
        except Exception:
            logger.exception(f"Event handler error for {event.type.name}")

    def get_history(
        self,
        event_type: Optional[EventType] = None,
        limit: int = 50
    ) -> List[Event]:
        """
        Get event history.

        Returns:
            List of events (newest first)
        """
        with self._lock:
            if event_type is None:
                events = list(self._history)
            else:
                events = [e for e in self._history if e.type == event_type]
            return events[-limit:][::-1]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    def shutdown(self) -> None:
        """Stop delivering events."""
        self._running = False


# =============================================================================
# EVENT LOGGING HANDLER
# =============================================================================

class EventLogger:
    """Handler that logs all events."""

    def __init__(self, log_level: int = logging.INFO):
        self.log_level = log_level
        self._logger = logging.getLogger("haarlens.events")

    def __call__(self, event: Event) -> None:
        self._logger.log(
            self.log_level,
            f"[{event.type.name}] {event.source}: {event.data}"
        )
