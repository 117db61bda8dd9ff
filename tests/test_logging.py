"""Tests for the trainbook structured event logging system."""

from __future__ import annotations

import json
from pathlib import Path

import pytest


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def workspace_dir(tmp_path: Path) -> Path:
    """Create a minimal workspace directory."""
    (tmp_path / "logs").mkdir()
    return tmp_path


@pytest.fixture
def sink(workspace_dir: Path):
    from trainbook.logging.sink import EventSink

    return EventSink(workspace_dir)


def _event(message: str = "hello", event_type=None, level=None, **kw):
    from trainbook.logging.events import EventLevel, EventType, StoreEvent

    return StoreEvent(
        level=level or EventLevel.info,
        event_type=event_type or EventType.project_created,
        message=message,
        **kw,
    )


# ---------------------------------------------------------------------------
# A) Event schema
# ---------------------------------------------------------------------------


class TestStoreEvent:
    def test_event_defaults(self):
        evt = _event()
        assert evt.schema_version == 1
        assert evt.ts.endswith("Z")
        assert evt.level == "info"
        assert evt.event_type == "project_created"
        assert evt.context == {}
        assert evt.error_code is None

    def test_event_serialization(self):
        from trainbook.logging.events import EventLevel, EventType

        d = _event(event_type=EventType.storage_warning, level=EventLevel.warning).model_dump()
        assert d["level"] == "warning"
        assert d["event_type"] == "storage_warning"

    def test_error_codes_are_strings(self):
        from trainbook.logging import events

        codes = [
            events.TEMPLATE_MISSING,
            events.TAB_EXISTS,
            events.TAB_MISSING,
            events.TAB_RENAME_FAILED,
            events.INDEX_ROW_MISSING,
            events.INDEX_WRITE_FAILED,
            events.FOLDER_CREATE_FAILED,
            events.FOLDER_RENAME_FAILED,
            events.FOLDER_TRASH_FAILED,
            events.GRID_WRITE_FAILED,
            events.ACCESS_LOOKUP_FAILED,
            events.ACCESS_UPDATE_FAILED,
        ]
        assert all(isinstance(c, str) and c for c in codes)
        assert len(set(codes)) == len(codes)


# ---------------------------------------------------------------------------
# B) Filesystem NDJSON sink
# ---------------------------------------------------------------------------


class TestEventSink:
    def test_write_creates_global_log(self, sink, workspace_dir):
        sink.write(_event("test create"))

        lines = (workspace_dir / "logs" / "events.ndjson").read_text().strip().splitlines()
        assert len(lines) == 1
        parsed = json.loads(lines[0])
        assert parsed["message"] == "test create"
        assert parsed["level"] == "info"

    def test_write_creates_per_project_log(self, sink, workspace_dir):
        sink.write(_event("created"), project_id="p-1")
        assert (workspace_dir / "logs" / "projects" / "p-1.ndjson").exists()
        assert [e["message"] for e in sink.read_project_log("p-1")] == ["created"]

    def test_json_sort_keys(self, sink, workspace_dir):
        sink.write(_event())
        line = (workspace_dir / "logs" / "events.ndjson").read_text().strip()
        keys = list(json.loads(line).keys())
        assert keys == sorted(keys)

    def test_read_global_most_recent_first_with_filters(self, sink):
        from trainbook.logging.events import EventLevel, EventType

        sink.write(_event("first", context={"project_id": "a"}))
        sink.write(_event("second", event_type=EventType.access_error, level=EventLevel.error))
        sink.write(_event("third", context={"project_id": "b"}))

        assert [e["message"] for e in sink.read_global()] == ["third", "second", "first"]
        assert [e["message"] for e in sink.read_global(level="error")] == ["second"]
        assert [e["message"] for e in sink.read_global(event_type="access_error")] == ["second"]
        assert [e["message"] for e in sink.read_global(project_id="a")] == ["first"]
        assert len(sink.read_global(limit=2)) == 2

    def test_read_missing_log_returns_empty(self, sink):
        assert sink.read_global() == []
        assert sink.read_project_log("nope") == []

    def test_rejects_traversal_in_project_id(self, sink, workspace_dir):
        sink.write(_event(), project_id="../../etc/passwd")
        assert list((workspace_dir / "logs" / "projects").glob("*.ndjson")) == []
        assert len(sink.read_global()) == 1
        assert sink.read_project_log("../../etc/passwd") == []

    def test_tail_read_bounded(self, workspace_dir):
        from trainbook.logging.sink import EventSink

        sink = EventSink(workspace_dir, tail_bytes=200)
        for i in range(20):
            sink.write(_event(f"event {i:04d}"))
        events = sink.read_global()
        assert 0 < len(events) < 20

    def test_eager_directory_creation(self, tmp_path):
        from trainbook.logging.sink import EventSink

        EventSink(tmp_path / "fresh")
        assert (tmp_path / "fresh" / "logs" / "projects").is_dir()

    def test_multi_threaded_appends(self, sink, workspace_dir):
        import threading

        barrier = threading.Barrier(4)

        def writer(tid: int) -> None:
            barrier.wait()
            for i in range(25):
                sink.write(_event(f"t{tid}-e{i}"))

        threads = [threading.Thread(target=writer, args=(t,)) for t in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = [ln for ln in (workspace_dir / "logs" / "events.ndjson").read_text().splitlines() if ln.strip()]
        assert len(lines) == 100
        for line in lines:
            assert "message" in json.loads(line)


class TestLogPurge:
    def test_purge_old_project_logs(self, sink, workspace_dir):
        import os
        import time

        sink.write(_event("old"), project_id="old-project")
        sink.write(_event("kept"), project_id="keep-me")
        old_time = time.time() - 60 * 86400
        for f in (workspace_dir / "logs").rglob("*.ndjson"):
            os.utime(f, (old_time, old_time))

        assert sink.purge_old_logs(30, {"keep-me"}) == 1
        assert (workspace_dir / "logs" / "projects" / "keep-me.ndjson").exists()
        assert not (workspace_dir / "logs" / "projects" / "old-project.ndjson").exists()


# ---------------------------------------------------------------------------
# C) Emit helpers
# ---------------------------------------------------------------------------


class TestEmitHelpers:
    def test_emit_without_workspace_is_noop(self):
        from trainbook.logging.events import EventType, emit_info, get_sink

        assert get_sink() is None
        emit_info(EventType.project_created, "nowhere to go")

    def test_set_workspace_dir_enables_logging(self, workspace_dir):
        from trainbook.logging.events import EventType, emit_info, set_workspace_dir

        set_workspace_dir(workspace_dir)
        emit_info(EventType.template_built, "hello from test")

        lines = (workspace_dir / "logs" / "events.ndjson").read_text().strip().splitlines()
        assert len(lines) == 1
        assert "hello from test" in lines[0]

    def test_emit_error_sets_error_code(self, workspace_dir):
        from trainbook.logging.events import EventType, emit_error, set_workspace_dir

        set_workspace_dir(workspace_dir)
        emit_error(EventType.storage_error, "boom", error_code="folder_create_failed")

        parsed = json.loads((workspace_dir / "logs" / "events.ndjson").read_text().strip())
        assert parsed["error_code"] == "folder_create_failed"
        assert parsed["level"] == "error"

    def test_emit_never_raises(self, workspace_dir, monkeypatch):
        from trainbook.logging.events import EventType, emit_warning, get_sink, set_workspace_dir

        set_workspace_dir(workspace_dir)

        def broken_write(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(get_sink(), "write", broken_write)
        emit_warning(EventType.storage_warning, "still fine")

    def test_project_events_reach_project_log(self, workspace_dir):
        from trainbook.logging.events import EventLevel, EventType, emit, make_project_event, set_workspace_dir

        set_workspace_dir(workspace_dir)
        emit(make_project_event(EventType.project_opened, EventLevel.info, "opened", project_id="p-9"))
        assert (workspace_dir / "logs" / "projects" / "p-9.ndjson").exists()

    def test_store_operations_are_logged(self, workspace_dir):
        from conftest import make_store

        from trainbook.logging.events import get_sink, set_workspace_dir

        set_workspace_dir(workspace_dir)
        store = make_store(workspace_dir)
        project_id = store.document.create("Course").project_id
        store.document.add_slide(project_id)

        types = [e["event_type"] for e in get_sink().read_project_log(project_id)]
        assert types == ["project_created", "slide_added"]


# ---------------------------------------------------------------------------
# D) Redaction
# ---------------------------------------------------------------------------


class TestRedaction:
    def test_redact_sensitive_keys(self):
        from trainbook.logging.events import redact_context

        redacted = redact_context({"identity": "a@example.com", "password": "hunter2", "api_key": "k", "token": "t"})
        assert redacted["identity"] == "a@example.com"
        assert redacted["password"] == "[REDACTED]"
        assert redacted["api_key"] == "[REDACTED]"
        assert redacted["token"] == "[REDACTED]"

    def test_redact_url_query_params(self):
        from trainbook.logging.events import redact_context

        redacted = redact_context({"url": "https://example.com/exec?project=p&key=secret"})
        assert "secret" not in redacted["url"]
        assert redacted["url"].endswith("?[REDACTED]")

    def test_url_without_query_unchanged(self):
        from trainbook.logging.events import redact_context

        assert redact_context({"url": "https://example.com/exec"})["url"] == "https://example.com/exec"

    def test_long_strings_truncated(self):
        from trainbook.logging.events import redact_context

        redacted = redact_context({"traceback": "x" * 300})
        assert redacted["traceback"].endswith("...[truncated]")

    def test_nested_and_list_values(self):
        from trainbook.logging.events import redact_context

        redacted = redact_context(
            {"folder": {"secret": "s", "name": "Media"}, "urls": ["https://e.com/a?k=v", "plain"]}
        )
        assert redacted["folder"] == {"secret": "[REDACTED]", "name": "Media"}
        assert redacted["urls"] == ["https://e.com/a?[REDACTED]", "plain"]

    def test_emit_applies_redaction(self, workspace_dir):
        from trainbook.logging.events import EventType, emit_info, set_workspace_dir

        set_workspace_dir(workspace_dir)
        emit_info(EventType.access_changed, "test", {"project_id": "p", "identity": "a", "session": "abc"})

        parsed = json.loads((workspace_dir / "logs" / "events.ndjson").read_text().strip())
        assert parsed["context"]["session"] == "[REDACTED]"
        assert parsed["context"]["identity"] == "a"


# ---------------------------------------------------------------------------
# E) Attribution invariants
# ---------------------------------------------------------------------------


class TestAttributionInvariants:
    def test_missing_attribution_downgrades_to_warning(self, workspace_dir):
        from trainbook.logging.events import EventType, emit, set_workspace_dir

        set_workspace_dir(workspace_dir)
        emit(_event("added without ids", event_type=EventType.slide_added, context={"project_id": "p"}))

        parsed = json.loads((workspace_dir / "logs" / "events.ndjson").read_text().strip())
        assert parsed["level"] == "warning"
        assert parsed["context"]["_missing_attribution"] == ["slide_id"]

    def test_valid_attribution_stays_info(self, workspace_dir):
        from trainbook.logging.events import EventType, emit, set_workspace_dir

        set_workspace_dir(workspace_dir)
        emit(
            _event(
                "added",
                event_type=EventType.slide_added,
                context={"project_id": "p", "slide_id": "s"},
            )
        )

        parsed = json.loads((workspace_dir / "logs" / "events.ndjson").read_text().strip())
        assert parsed["level"] == "info"
        assert "_missing_attribution" not in parsed["context"]


class TestHelperConstructors:
    def test_make_project_event(self):
        from trainbook.logging.events import EventLevel, EventType, make_project_event

        evt = make_project_event(
            EventType.element_added,
            EventLevel.info,
            "Added",
            project_id="p",
            tab="Course",
            extra={"element_id": "e", "column": 5},
        )
        assert evt.context == {"project_id": "p", "tab": "Course", "element_id": "e", "column": 5}

    def test_make_project_event_with_error_code(self):
        from trainbook.logging.events import EventLevel, EventType, make_project_event

        evt = make_project_event(
            EventType.project_create_failed,
            EventLevel.error,
            "Failed",
            project_id="p",
            error_code="folder_create_failed",
        )
        assert evt.context == {"project_id": "p"}
        assert evt.error_code == "folder_create_failed"


class TestExports:
    def test_package_exports(self):
        from trainbook.logging import EventSink, make_project_event, redact_context, reset_sink

        assert callable(make_project_event)
        assert callable(redact_context)
        assert callable(reset_sink)
        assert EventSink is not None
