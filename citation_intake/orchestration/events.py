"""
Notifications emitted by the session controller.

The presentation layer subscribes to the bus and renders each event as user
feedback; the controller never decides how feedback looks.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class SessionEventType(Enum):
    DRAFT_RESTORED = "draft-restored"
    DRAFT_SAVED = "draft-saved"
    SAVE_FAILED = "save-failed"
    STORAGE_WARNING = "storage-warning"
    VALIDATION_FAILED = "validation-failed"
    SUBMIT_SUCCEEDED = "submit-succeeded"
    SUBMIT_FAILED = "submit-failed"


@dataclass
class SessionEvent:
    """Represents a single notification from the controller."""
    type: SessionEventType
    message: str
    application_id: Optional[str] = None
    errors: Optional[Dict[str, str]] = None  # For validation-failed
    reason: Optional[str] = None  # For save-failed / submit-failed
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.type.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.application_id:
            result["application_id"] = self.application_id
        if self.errors is not None:
            result["errors"] = dict(self.errors)
        if self.reason:
            result["reason"] = self.reason
        return result


Listener = Callable[[SessionEvent], None]


class EventBus:
    """
    Synchronous fan-out of session events.

    A failing listener is logged and skipped so feedback rendering can never
    break the editing session. The last events are kept for late renderers.
    """

    def __init__(self, history_size: int = 50):
        self._listeners: List[Listener] = []
        self.history: List[SessionEvent] = []
        self.history_size = history_size

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            Function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: SessionEvent) -> None:
        self.history.append(event)
        if len(self.history) > self.history_size:
            del self.history[: len(self.history) - self.history_size]

        logger.debug(f"Event {event.type.value}: {event.message}")
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener failed while handling {event.type.value}")

    def drain(self) -> List[SessionEvent]:
        """Return and forget the retained events."""
        events, self.history = self.history, []
        return events
