"""Tracing and logging for ComplyGuard."""

from .logger import setup_tracing, log_audit_event, get_tracer

__all__ = [
    "setup_tracing",
    "log_audit_event",
    "get_tracer",
]
