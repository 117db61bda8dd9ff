"""Unified event schema and module-level emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context -- failures are
swallowed and printed to stderr.
"""

from __future__ import annotations

import re
import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlparse, urlunparse

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Workspace / template
    workspace_initialized = "workspace_initialized"
    template_built = "template_built"
    template_reconciled = "template_reconciled"

    # Project lifecycle
    project_created = "project_created"
    project_create_failed = "project_create_failed"
    project_opened = "project_opened"
    project_updated = "project_updated"
    project_update_failed = "project_update_failed"
    project_renamed = "project_renamed"
    project_deleted = "project_deleted"
    project_delete_failed = "project_delete_failed"
    project_published = "project_published"
    project_inconsistent = "project_inconsistent"

    # Slide / element lifecycle
    slide_added = "slide_added"
    slide_updated = "slide_updated"
    slide_deleted = "slide_deleted"
    slide_failed = "slide_failed"
    element_added = "element_added"
    element_updated = "element_updated"
    element_deleted = "element_deleted"
    element_failed = "element_failed"
    tracking_updated = "tracking_updated"

    # Index
    index_row_missing = "index_row_missing"

    # Collaborators
    storage_warning = "storage_warning"
    storage_error = "storage_error"

    # Access
    access_denied = "access_denied"
    access_error = "access_error"
    access_changed = "access_changed"

    # Requests
    request_failed = "request_failed"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

# Template
TEMPLATE_MISSING = "template_missing"
TAB_EXISTS = "tab_exists"
TAB_MISSING = "tab_missing"
TAB_RENAME_FAILED = "tab_rename_failed"

# Index
INDEX_ROW_MISSING = "index_row_missing"
INDEX_WRITE_FAILED = "index_write_failed"

# Storage
FOLDER_CREATE_FAILED = "folder_create_failed"
FOLDER_RENAME_FAILED = "folder_rename_failed"
FOLDER_TRASH_FAILED = "folder_trash_failed"

# Grid
GRID_WRITE_FAILED = "grid_write_failed"

# Access
ACCESS_LOOKUP_FAILED = "access_lookup_failed"
ACCESS_UPDATE_FAILED = "access_update_failed"


# ---------------------------------------------------------------------------
# Secret redaction
# ---------------------------------------------------------------------------

_SENSITIVE_KEY_RE = re.compile(
    r"(password|passwd|secret|token|api_key|apikey|authorization|cookie"
    r"|session|bearer|credential)",
    re.IGNORECASE,
)

_MAX_VALUE_LEN = 256


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with sensitive values redacted.

    Rules:
    - Keys matching sensitive patterns have their values replaced with
      ``"[REDACTED]"``.
    - String values that look like URLs have query params stripped.
    - String values longer than 256 chars are truncated.
    """
    return _redact_dict(context)


def _redact_dict(d: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in d.items():
        if _SENSITIVE_KEY_RE.search(k):
            out[k] = "[REDACTED]"
        elif isinstance(v, dict):
            out[k] = _redact_dict(v)
        elif isinstance(v, list):
            out[k] = [_redact_value(item) for item in v]
        else:
            out[k] = _redact_value(v)
    return out


def _redact_value(v: Any) -> Any:
    if isinstance(v, dict):
        return _redact_dict(v)
    if isinstance(v, str):
        if "://" in v:
            try:
                parsed = urlparse(v)
                if parsed.scheme in ("http", "https", "file"):
                    # Keep the path, drop query/fragment/userinfo
                    clean = urlunparse((
                        parsed.scheme,
                        parsed.hostname or "",
                        parsed.path,
                        "",
                        "",
                        "",
                    ))
                    return clean + "?[REDACTED]" if parsed.query else clean
            except ValueError:
                pass
        if len(v) > _MAX_VALUE_LEN:
            return v[:_MAX_VALUE_LEN] + "...[truncated]"
    return v


# ---------------------------------------------------------------------------
# Attribution invariants
# ---------------------------------------------------------------------------

_PROJECT_EVENT_REQUIRED = {"project_id"}

_EVENT_REQUIRED_KEYS: dict[str, set[str]] = {
    EventType.project_created.value: _PROJECT_EVENT_REQUIRED,
    EventType.project_opened.value: _PROJECT_EVENT_REQUIRED,
    EventType.project_updated.value: _PROJECT_EVENT_REQUIRED,
    EventType.project_renamed.value: _PROJECT_EVENT_REQUIRED,
    EventType.project_deleted.value: _PROJECT_EVENT_REQUIRED,
    EventType.project_published.value: _PROJECT_EVENT_REQUIRED,
    EventType.project_inconsistent.value: _PROJECT_EVENT_REQUIRED,
    EventType.slide_added.value: {"project_id", "slide_id"},
    EventType.slide_updated.value: {"project_id", "slide_id"},
    EventType.slide_deleted.value: {"project_id", "slide_id"},
    EventType.element_added.value: {"project_id", "element_id"},
    EventType.element_updated.value: {"project_id", "element_id"},
    EventType.element_deleted.value: {"project_id", "element_id"},
    EventType.tracking_updated.value: _PROJECT_EVENT_REQUIRED,
    EventType.access_changed.value: {"project_id", "identity"},
    EventType.template_reconciled.value: {"tab"},
}


def _validate_attribution(event: StoreEvent) -> StoreEvent:
    """Check required context keys; downgrade to warning if missing."""
    key = event.event_type.value if isinstance(event.event_type, EventType) else event.event_type
    required = _EVENT_REQUIRED_KEYS.get(key, set())
    if not required:
        return event
    missing = required - set(event.context.keys())
    if missing:
        ctx = dict(event.context)
        ctx["_missing_attribution"] = sorted(missing)
        return event.model_copy(update={"level": EventLevel.warning, "context": ctx})
    return event


def make_project_event(
    event_type: EventType,
    level: EventLevel,
    message: str,
    *,
    project_id: str,
    tab: str | None = None,
    error_code: str | None = None,
    extra: dict[str, Any] | None = None,
) -> StoreEvent:
    """Build an event with guaranteed project attribution context."""
    ctx: dict[str, Any] = {"project_id": project_id}
    if tab is not None:
        ctx["tab"] = tab
    if extra:
        ctx.update(extra)
    return StoreEvent(
        level=level,
        event_type=event_type,
        message=message,
        context=ctx,
        error_code=error_code,
    )


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class StoreEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Module-level sink reference
# ---------------------------------------------------------------------------

# Lazily initialised when ``set_workspace_dir`` is called.
_sink: Any = None  # EventSink | None
_workspace_dir: Any = None


def set_workspace_dir(workspace_dir: Any) -> None:
    """Configure the module-level event sink for a workspace directory.

    This should be called early in a CLI command or when a workspace is
    opened.  If it is never called, ``emit()`` silently discards events.

    Reads ``logging_fsync`` and ``logging_tail_bytes`` from the workspace
    config (``trainbook.yaml``) to configure the sink.
    """
    global _sink, _workspace_dir
    from pathlib import Path

    from trainbook.logging.sink import EventSink

    _workspace_dir = Path(workspace_dir)

    fsync = False
    tail_bytes = None
    try:
        from trainbook.config import load_workspace_config

        cfg = load_workspace_config(_workspace_dir)
        fsync = bool(cfg.get("logging_fsync", False))
        tb = cfg.get("logging_tail_bytes")
        if tb is not None:
            tail_bytes = int(tb)
    except Exception:
        _stderr_warning(f"could not read logging config: {traceback.format_exc()}")

    _sink = EventSink(_workspace_dir, fsync=fsync, tail_bytes=tail_bytes)


def reset_sink() -> None:
    """Detach the module-level sink so later events are discarded."""
    global _sink, _workspace_dir
    _sink = None
    _workspace_dir = None


def get_sink() -> Any:
    """Return the module-level sink, or None."""
    return _sink


# ---------------------------------------------------------------------------
# Rate-limited stderr warnings
# ---------------------------------------------------------------------------

_last_stderr_ts: float = 0.0
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Print a warning to stderr, rate-limited to one per 60 seconds."""
    global _last_stderr_ts
    now = time.monotonic()
    if now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[trainbook] {msg}", file=sys.stderr)
    except Exception:
        pass


# ---------------------------------------------------------------------------
# Safe emit helpers
# ---------------------------------------------------------------------------


def emit(event: StoreEvent) -> None:
    """Write an event to the global log and, when attributed, the project log.

    **Never raises.**  On failure, prints a rate-limited warning to stderr.

    Applies secret redaction and attribution validation before writing.
    """
    try:
        sink = get_sink()
        if sink is None:
            return
        event = event.model_copy(update={"context": redact_context(event.context)})
        event = _validate_attribution(event)
        sink.write(event, project_id=event.context.get("project_id"))
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
) -> None:
    """Convenience: emit an info-level event."""
    emit(
        StoreEvent(
            level=EventLevel.info,
            event_type=event_type,
            message=message,
            context=context or {},
        )
    )


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    """Convenience: emit a warning-level event."""
    emit(
        StoreEvent(
            level=EventLevel.warning,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        )
    )


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    """Convenience: emit an error-level event."""
    emit(
        StoreEvent(
            level=EventLevel.error,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        )
    )
