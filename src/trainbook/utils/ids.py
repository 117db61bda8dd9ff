"""Identifier, timestamp and tab-name helpers."""

from __future__ import annotations

import re
import time
import uuid

MAX_TAB_NAME = 31

_TAB_UNSAFE_RE = re.compile(r"[\\/*\[\]?:]")


def new_id() -> str:
    """Return a fresh opaque identifier (UUID4 string)."""
    return str(uuid.uuid4())


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def sanitize_tab_name(title: str) -> str:
    """Derive a worksheet name from a project title.

    Characters the workbook rejects (``\\ / * [ ] ? :``) become ``_``.
    Names longer than 31 characters keep their first 28 and end in ``...``.

    Args:
        title: Project title.

    Returns:
        The tab name, or ``""`` for a blank title.
    """
    name = _TAB_UNSAFE_RE.sub("_", (title or "").strip())
    if len(name) > MAX_TAB_NAME:
        name = name[:28] + "..."
    return name


def folder_name(title: str, project_id: str) -> str:
    """Name of a project's storage folder."""
    return f"{title} ({project_id})"
