"""The ProjectIndex tab: one summary row per project.

Lookups read the whole identifier column in a single range fetch and scan
it linearly; the column is narrow, so this stays cheap even for a few
thousand projects.
"""

from __future__ import annotations

from typing import Any, NamedTuple

from trainbook import catalog
from trainbook.catalog import INDEX_COLUMNS
from trainbook.grid import GridAccessor
from trainbook.logging.events import INDEX_ROW_MISSING, EventType, emit_warning
from trainbook.models import IndexEntry

_FIELD_ATTRS = {
    "PROJECT_ID": "project_id",
    "TITLE": "title",
    "CREATED_AT": "created_at",
    "MODIFIED_AT": "modified_at",
    "LAST_ACCESSED": "last_accessed",
    "ADMIN_USERS": "admin_users",
}

_INT_FIELDS = {"CREATED_AT", "MODIFIED_AT", "LAST_ACCESSED"}


class IndexLookup(NamedTuple):
    found: bool
    row_index: int | None = None


def _field_key(field: str) -> str:
    key = field.upper()
    if key in INDEX_COLUMNS:
        return key
    for k, attr in _FIELD_ATTRS.items():
        if attr == field or attr.replace("_", "") == field.lower().replace("_", ""):
            return k
    raise KeyError(f"Unknown index field: {field!r}")


def _to_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _row_to_entry(row: list[Any]) -> IndexEntry:
    values: dict[str, Any] = {}
    for key, pos in INDEX_COLUMNS.items():
        raw = row[pos] if pos < len(row) else ""
        if key in _INT_FIELDS:
            values[_FIELD_ATTRS[key]] = _to_int(raw)
        else:
            values[_FIELD_ATTRS[key]] = "" if raw in (None, "") else str(raw)
    return IndexEntry(**values)


def _entry_to_row(entry: IndexEntry) -> list[Any]:
    row: list[Any] = [""] * len(INDEX_COLUMNS)
    for key, pos in INDEX_COLUMNS.items():
        value = getattr(entry, _FIELD_ATTRS[key])
        row[pos] = "" if value is None else value
    return row


class ProjectIndex:
    """Denormalized project-id lookup kept in its own tab."""

    def __init__(self, grid: GridAccessor, tab: str = catalog.INDEX_TAB) -> None:
        self.grid = grid
        self.tab = tab

    def ensure(self) -> None:
        """Create the index tab with its header row if it does not exist."""
        if self.grid.has_tab(self.tab):
            return
        with self.grid.batch():
            self.grid.find_tab(self.tab, create_if_missing=True)
            headers = catalog.index_headers()
            for col in range(1, len(headers) + 1):
                self.grid.create_section_header(self.tab, 1, col, headers[col - 1])

    def _id_column(self) -> list[Any]:
        last = self.grid.last_row(self.tab)
        if last < 2:
            return []
        col = catalog.index_columns()["PROJECT_ID"]
        values = self.grid.get_range(self.tab, 2, col, last - 1, 1) or []
        return [row[0] for row in values]

    def find(self, project_id: str) -> IndexLookup:
        """Locate the row holding *project_id*."""
        if not project_id or not self.grid.has_tab(self.tab):
            return IndexLookup(False)
        for offset, value in enumerate(self._id_column()):
            if value != "" and str(value) == project_id:
                return IndexLookup(True, offset + 2)
        return IndexLookup(False)

    def get(self, project_id: str) -> IndexEntry | None:
        lookup = self.find(project_id)
        if not lookup.found:
            return None
        row = self.grid.get_range(self.tab, lookup.row_index, 1, 1, len(INDEX_COLUMNS))
        return _row_to_entry(row[0]) if row else None

    def upsert(self, entry: IndexEntry) -> int:
        """Write *entry*, replacing the existing row for its id.  Returns the row."""
        self.ensure()
        values = _entry_to_row(entry)
        lookup = self.find(entry.project_id)
        if lookup.found:
            self.grid.set_range(self.tab, lookup.row_index, 1, [values])
            return lookup.row_index
        row = self.grid.append_row(self.tab, values)
        return row

    def delete_row(self, project_id: str) -> bool:
        """Remove the row for *project_id*.  Returns False when there was none."""
        lookup = self.find(project_id)
        if not lookup.found:
            return False
        return self.grid.delete_rows(self.tab, lookup.row_index, 1)

    def list_all(self) -> list[IndexEntry]:
        """Every entry in row order; rows with a blank id are skipped."""
        if not self.grid.has_tab(self.tab):
            return []
        last = self.grid.last_row(self.tab)
        if last < 2:
            return []
        rows = self.grid.get_range(self.tab, 2, 1, last - 1, len(INDEX_COLUMNS)) or []
        return [_row_to_entry(r) for r in rows if r[INDEX_COLUMNS["PROJECT_ID"]] != ""]

    def set_field(self, project_id: str, field: str, value: Any) -> bool:
        """Write one column of an existing row."""
        lookup = self.find(project_id)
        if not lookup.found:
            emit_warning(
                EventType.index_row_missing,
                f"No index row for project {project_id}",
                {"project_id": project_id, "field": field},
                error_code=INDEX_ROW_MISSING,
            )
            return False
        col = catalog.index_columns()[_field_key(field)]
        return self.grid.set_cell(self.tab, lookup.row_index, col, "" if value is None else value)

    def admins(self, project_id: str) -> list[str]:
        entry = self.get(project_id)
        return entry.admins() if entry else []

    def set_admins(self, project_id: str, emails: list[str]) -> bool:
        """Replace the admin list, de-duplicated case-insensitively."""
        seen: set[str] = set()
        kept = []
        for e in emails:
            e = e.strip()
            if e and e.lower() not in seen:
                seen.add(e.lower())
                kept.append(e)
        return self.set_field(project_id, "ADMIN_USERS", ",".join(kept))
