"""Tracing and logging for ComplyGuard audit runs."""

import logging
import sys
from collections import deque
from datetime import datetime
from typing import Any

MAX_EVENTS = 1000


class AuditTracer:
    """Tracer for audit events and workflows."""

    def __init__(self, name: str = "complyguard", max_events: int = MAX_EVENTS):
        self.logger = logging.getLogger(name)
        self._setup_handler()
        # Oldest events are dropped once the history is full.
        self.events: deque[dict[str, Any]] = deque(maxlen=max_events)

    def _setup_handler(self) -> None:
        """Setup console handler with formatting."""
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            formatter = logging.Formatter(
                "[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
                datefmt="%H:%M:%S",
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def log(
        self,
        event_type: str,
        component: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Log an audit event.

        Args:
            event_type: Type of event (e.g., "start", "probe", "transition").
            component: Name of the engine component emitting the event.
            message: Human-readable message.
            data: Optional additional data.
        """
        event = {
            "timestamp": datetime.now().isoformat(),
            "event_type": event_type,
            "component": component,
            "message": message,
            "data": data or {},
        }
        self.events.append(event)

        log_msg = f"[{component}] {event_type}: {message}"
        if data:
            log_msg += f" | {data}"
        self.logger.info(log_msg)

    def get_events(self, component: str | None = None) -> list[dict[str, Any]]:
        """Get logged events, optionally filtered by component."""
        if component:
            return [e for e in self.events if e["component"] == component]
        return list(self.events)

    def clear(self) -> None:
        """Clear all logged events."""
        self.events.clear()


# Global tracer instance
_tracer: AuditTracer | None = None


def setup_tracing(log_level: str = "INFO") -> AuditTracer:
    """Setup global tracing.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).

    Returns:
        The configured AuditTracer instance.
    """
    global _tracer
    _tracer = AuditTracer()
    _tracer.logger.setLevel(getattr(logging, log_level.upper()))
    return _tracer


def get_tracer() -> AuditTracer:
    """Get the global tracer instance."""
    global _tracer
    if _tracer is None:
        _tracer = AuditTracer()
    return _tracer


def log_audit_event(
    event_type: str,
    component: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> None:
    """Log an audit event using the global tracer."""
    get_tracer().log(event_type, component, message, data)
