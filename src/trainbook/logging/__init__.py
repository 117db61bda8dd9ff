"""Structured event logging for trainbook.

Provides a unified event schema, filesystem NDJSON sink, and safe
emit helpers that never raise uncaught exceptions.
"""

from trainbook.logging.events import (
    EventLevel,
    EventType,
    StoreEvent,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    get_sink,
    make_project_event,
    redact_context,
    reset_sink,
    set_workspace_dir,
)
from trainbook.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "StoreEvent",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "get_sink",
    "make_project_event",
    "redact_context",
    "reset_sink",
    "set_workspace_dir",
]
