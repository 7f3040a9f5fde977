"""
Kubernetes Event recording, carried in the reconciliation context for
downstream reconciliation actions.
"""
import logging
from typing import Any, Protocol

import kopf

logger = logging.getLogger("events")

EVENT_NORMAL = "Normal"
EVENT_WARNING = "Warning"


class EventRecorder(Protocol):
    def record(self, obj: Any, event_type: str, reason: str, message: str) -> None:
        ...


class KopfEventRecorder:
    """Posts Events against the involved object through kopf."""

    def record(self, obj: Any, event_type: str, reason: str, message: str) -> None:
        logger.debug(f"event {event_type}/{reason}: {message}")
        kopf.event(obj, type=event_type, reason=reason, message=message)
