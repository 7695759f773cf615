"""
Execution lifecycle events.

Every execution can be traced through the events its components emit:
  - SANDBOX_CREATED / STREAM_ATTACHED / SANDBOX_STARTED: provisioning steps
  - SANDBOX_EXITED / EXECUTION_TIMEOUT: which side of the deadline race won
  - ARTIFACT_HARVESTED / HARVEST_WARNING: one per output file
  - SANDBOX_REMOVED / CLEANUP_FAILED: teardown, on every exit path
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    # Provisioning
    SANDBOX_CREATED = "SANDBOX_CREATED"
    STREAM_ATTACHED = "STREAM_ATTACHED"
    SANDBOX_STARTED = "SANDBOX_STARTED"

    # Deadline race
    SANDBOX_EXITED = "SANDBOX_EXITED"
    EXECUTION_TIMEOUT = "EXECUTION_TIMEOUT"

    # Harvest
    ARTIFACT_HARVESTED = "ARTIFACT_HARVESTED"
    HARVEST_WARNING = "HARVEST_WARNING"

    # Teardown
    SANDBOX_REMOVED = "SANDBOX_REMOVED"
    CLEANUP_FAILED = "CLEANUP_FAILED"

    # General
    EXECUTION_COMPLETE = "EXECUTION_COMPLETE"
    EXECUTION_ERROR = "EXECUTION_ERROR"


@dataclass
class ExecutionEvent:
    event_type: EventType
    component: str
    message: str
    request_id: Optional[str] = None
    data: Optional[dict] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type.value,
            "component": self.component,
            "message": self.message,
            "request_id": self.request_id,
            "timestamp": self.timestamp,
            "data": self.data,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class EventEmitter:
    """
    Collects events during one or more executions.
    Components call emitter.emit() / emitter.error().
    Callers read .events or register a callback with on_event().
    """

    def __init__(self):
        self.events: list[ExecutionEvent] = []
        self._callbacks: list[Callable[[ExecutionEvent], None]] = []

    def on_event(self, callback: Callable[[ExecutionEvent], None]):
        """Register a callback invoked synchronously for every event."""
        self._callbacks.append(callback)

    def _emit(self, event: ExecutionEvent):
        self.events.append(event)
        for cb in self._callbacks:
            try:
                cb(event)
            except Exception:
                logger.exception("Event callback failed for %s", event.event_type.value)

    def emit(self, event_type: EventType, component: str, message: str,
             request_id: str = None, data: dict = None):
        self._emit(ExecutionEvent(
            event_type=event_type,
            component=component,
            message=message,
            request_id=request_id,
            data=data,
        ))

    def error(self, component: str, message: str, request_id: str = None,
              data: dict = None):
        self._emit(ExecutionEvent(
            event_type=EventType.EXECUTION_ERROR,
            component=component,
            message=message,
            request_id=request_id,
            data=data,
        ))

    def of_type(self, event_type: EventType) -> list[ExecutionEvent]:
        return [e for e in self.events if e.event_type == event_type]
