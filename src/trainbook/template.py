"""Master tab, project-tab cloning, schema reconcile and block/column writers.

Slide blocks stack downward in columns A:B from row 8; element columns
stack rightward from column E across the element, timeline and quiz rows.
The two regions never overlap, so adding a slide block or an element
column writes into blank cells and never shifts existing data.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from pydantic import BaseModel

from trainbook import catalog
from trainbook.catalog import (
    ELEMENT_BLOCK_END,
    ELEMENT_BLOCK_START,
    ELEMENT_HEADERS_ROW,
    ELEMENT_INFO,
    PROJECT_INFO,
    QUIZ,
    SCHEMA_VERSION,
    SLIDE_HEADER_RE,
    SLIDE_INFO,
    TIMELINE,
    USER_TRACKING,
    VERSION_CELL,
    FieldSpec,
    Repeat,
    SectionSpec,
)
from trainbook.errors import TemplateCloneError
from trainbook.grid import GridAccessor, column_to_index
from trainbook.logging.events import (
    TAB_EXISTS,
    TAB_MISSING,
    TEMPLATE_MISSING,
    EventType,
    emit_info,
    emit_warning,
)
from trainbook.models import Element, Slide, Tracking
from trainbook.utils.ids import new_id, now_ms, sanitize_tab_name

_LABEL_WIDTH = 150 / 7
_VALUE_WIDTH = 250 / 7


def _norm(key: str) -> str:
    return key.replace("_", "").lower()


def _lookup(sec: SectionSpec, key: str) -> FieldSpec | None:
    """Find a field by attribute, camelCase alias or catalog key."""
    wanted = _norm(key)
    for f in sec.fields:
        if _norm(f.attr) == wanted or _norm(f.key) == wanted:
            return f
    return None


def _cell(value: Any) -> Any:
    return "" if value is None else value


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump()
    return dict(value)


class DocumentTemplate:
    """Creates and shapes project tabs according to the catalog."""

    def __init__(self, grid: GridAccessor, master_tab: str = "Template") -> None:
        self.grid = grid
        self.master_tab = master_tab

    # ------------------------------------------------------------------
    # Master and cloning
    # ------------------------------------------------------------------

    def build_master(self) -> list[str]:
        """Create the master tab if needed and fill in any missing section.

        Returns the names of the sections written.
        """
        with self.grid.batch():
            self.grid.find_tab(self.master_tab, create_if_missing=True)
            written = self.reconcile(self.master_tab)
            for col, width in (("A", _LABEL_WIDTH), ("B", _VALUE_WIDTH), ("D", _LABEL_WIDTH)):
                self.grid.set_column_width(self.master_tab, col, width)
        if written:
            emit_info(
                EventType.template_built,
                f"Master tab {self.master_tab!r} built",
                {"tab": self.master_tab, "sections": written},
            )
        return written

    def create_from_template(self, title: str, project_id: str | None = None) -> str:
        """Clone the master tab for a new project and stamp its identity fields.

        Args:
            title: Project title; the tab is named after it.
            project_id: Identifier to stamp; generated when omitted.

        Returns:
            The new tab name.

        Raises:
            TemplateCloneError: The master tab is absent, the title is blank,
                or a tab with the derived name already exists.
        """
        tab = sanitize_tab_name(title)
        if not tab:
            raise TemplateCloneError("Project title is blank", self.master_tab)
        if not self.grid.has_tab(self.master_tab):
            emit_warning(
                EventType.project_create_failed,
                f"Master tab {self.master_tab!r} not found",
                {"tab": tab},
                error_code=TEMPLATE_MISSING,
            )
            raise TemplateCloneError(
                f"Master tab {self.master_tab!r} not found", self.master_tab, tab
            )
        if self.grid.has_tab(tab):
            emit_warning(
                EventType.project_create_failed,
                f"Tab {tab!r} already exists",
                {"tab": tab},
                error_code=TAB_EXISTS,
            )
            raise TemplateCloneError(f"Tab {tab!r} already exists", self.master_tab, tab)

        project_id = project_id or new_id()
        now = now_ms()
        with self.grid.batch():
            if not self.grid.clone_tab(self.master_tab, tab):
                raise TemplateCloneError(
                    f"Could not clone {self.master_tab!r} to {tab!r}", self.master_tab, tab
                )
            try:
                self.write_project_info(
                    tab,
                    {
                        "project_id": project_id,
                        "web_app_url": "",
                        "title": title,
                        "created_at": now,
                        "modified_at": now,
                        "folder_id": "",
                    },
                )
            except Exception:
                self.grid.delete_tab(tab)
                raise
        return tab

    def write_project_info(self, tab: str, values: Mapping[str, Any]) -> bool:
        """Write PROJECT INFO fields given by attribute name."""
        if not self.grid.has_tab(tab):
            return False
        with self.grid.batch():
            for key, value in values.items():
                spec = _lookup(PROJECT_INFO, key)
                if spec is None:
                    raise KeyError(f"Unknown project field: {key!r}")
                addr = catalog.field_address(PROJECT_INFO.name, spec.key)
                self.grid.set_cell(tab, addr.row, addr.col, _cell(value))
        return True

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    def section_headers(self, tab: str) -> dict[str, Any]:
        """Text found in each structural section's header cell."""
        out: dict[str, Any] = {}
        for sec in catalog.sections():
            if not sec.structural:
                continue
            addr = catalog.header_address(sec.name)
            out[sec.name] = self.grid.get_cell(tab, addr.row, addr.col)
        return out

    def schema_version(self, tab: str) -> int | None:
        raw = self.grid.get_cell(tab, VERSION_CELL[0], VERSION_CELL[1])
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    def reconcile(self, tab: str) -> list[str]:
        """Append every section the current schema has and *tab* lacks.

        Existing sections are never moved or removed, and existing values
        are left untouched.  Returns the names of the sections written.
        """
        if not self.grid.has_tab(tab):
            emit_warning(
                EventType.template_reconciled,
                f"Cannot reconcile missing tab {tab!r}",
                {"tab": tab},
                error_code=TAB_MISSING,
            )
            return []

        missing = catalog.missing_sections(self.section_headers(tab))
        with self.grid.batch():
            for sec in missing:
                self._write_section(tab, sec)
            if self.schema_version(tab) != SCHEMA_VERSION:
                self.grid.set_cell(tab, VERSION_CELL[0], VERSION_CELL[1], SCHEMA_VERSION)

        names = [s.name for s in missing]
        if names and tab != self.master_tab:
            emit_info(
                EventType.template_reconciled,
                f"Added {len(names)} section(s) to {tab!r}",
                {"tab": tab, "sections": names},
            )
        return names

    def _write_section(self, tab: str, sec: SectionSpec) -> None:
        span = 2 if sec.repeat is Repeat.none else 1
        self.grid.create_section_header(tab, sec.start_row, sec.label_col, sec.header_text(), span=span)
        for f in sec.fields:
            if self.grid.get_cell(tab, f.row, sec.label_col) == "":
                self.grid.set_cell(tab, f.row, sec.label_col, f.label)
        if sec.repeat is Repeat.none:
            self._apply_widgets(tab, sec.fields, 0, column_to_index(sec.value_col))

    def _apply_widgets(self, tab: str, fields: Iterable[FieldSpec], row_shift: int, col: int) -> None:
        for f in fields:
            if f.options:
                self.grid.create_dropdown(tab, f.row + row_shift, col, list(f.options))
            elif f.checkbox:
                self.grid.create_checkbox(tab, f.row + row_shift, col, False)

    # ------------------------------------------------------------------
    # Slides
    # ------------------------------------------------------------------

    def slide_blocks(self, tab: str) -> list[tuple[int, int]]:
        """(header row, slide number) for every slide header in column A."""
        last = self.grid.last_row(tab)
        if last < SLIDE_INFO.start_row:
            return []
        column = self.grid.get_range(tab, SLIDE_INFO.start_row, "A", last - SLIDE_INFO.start_row + 1, 1) or []
        blocks = []
        for offset, (value,) in enumerate(column):
            if isinstance(value, str):
                m = SLIDE_HEADER_RE.match(value.strip())
                if m:
                    blocks.append((SLIDE_INFO.start_row + offset, int(m.group(1))))
        return blocks

    def count_slides(self, tab: str) -> int:
        return len(self.slide_blocks(tab))

    def find_slide_row(self, tab: str, slide_id: str) -> int | None:
        """Header row of the block holding *slide_id*."""
        id_offset = SLIDE_INFO.field("SLIDE_ID").row - SLIDE_INFO.start_row
        for row, _ in self.slide_blocks(tab):
            if self.grid.get_cell(tab, row + id_offset, SLIDE_INFO.value_col) == slide_id:
                return row
        return None

    def insert_slide_block(self, tab: str, slide: Slide) -> Slide:
        """Write *slide* into the block after the last existing one.

        A blank id or title is filled in.  Returns the slide as written.
        """
        n = self.count_slides(tab) + 1
        updates: dict[str, Any] = {}
        if not slide.slide_id:
            updates["slide_id"] = new_id()
        if not slide.title:
            updates["title"] = f"Slide {n}"
        slide = slide.model_copy(update=updates)
        self._write_slide_block(tab, catalog.slide_block_origin(n), slide.slide_number or n, slide)
        return slide

    def _write_slide_block(self, tab: str, origin: int, number: int, slide: Slide) -> None:
        shift = origin - SLIDE_INFO.start_row
        col = column_to_index(SLIDE_INFO.value_col)
        with self.grid.batch():
            self.grid.create_section_header(tab, origin, "A", SLIDE_INFO.header_text(number), span=2)
            for f in SLIDE_INFO.fields:
                self.grid.set_cell(tab, f.row + shift, SLIDE_INFO.label_col, f.label)
                self.grid.set_cell(tab, f.row + shift, col, _cell(getattr(slide, f.attr)))
            self._apply_widgets(tab, SLIDE_INFO.fields, shift, col)

    def update_slide_block(self, tab: str, slide_id: str, updates: Mapping[str, Any]) -> bool:
        """Write the given slide fields in place.  False if the slide is absent."""
        origin = self.find_slide_row(tab, slide_id)
        if origin is None:
            return False
        shift = origin - SLIDE_INFO.start_row
        with self.grid.batch():
            for key, value in updates.items():
                spec = _lookup(SLIDE_INFO, key)
                if spec is None:
                    emit_warning(
                        EventType.slide_failed,
                        f"Unknown slide field {key!r} ignored",
                        {"tab": tab, "slide_id": slide_id},
                    )
                    continue
                self.grid.set_cell(tab, spec.row + shift, SLIDE_INFO.value_col, _cell(value))
        return True

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    def element_ids(self, tab: str) -> list[tuple[int, Any]]:
        """(column, id cell value) for every column from E to the extent."""
        start = catalog.element_column(1)
        last = self.grid.last_column(tab)
        if last < start:
            return []
        row = ELEMENT_INFO.field("ELEMENT_ID").row
        values = self.grid.get_range(tab, row, start, 1, last - start + 1) or [[]]
        return [(start + j, v) for j, v in enumerate(values[0])]

    def count_elements(self, tab: str) -> int:
        return sum(1 for _, v in self.element_ids(tab) if v != "")

    def next_element_column(self, tab: str) -> int:
        """First column at or after E whose element id cell is empty."""
        for col, value in self.element_ids(tab):
            if value == "":
                return col
        ids = self.element_ids(tab)
        return ids[-1][0] + 1 if ids else catalog.element_column(1)

    def find_element_column(self, tab: str, element_id: str) -> int | None:
        for col, value in self.element_ids(tab):
            if value != "" and value == element_id:
                return col
        return None

    def insert_element_column(self, tab: str, element: Element) -> tuple[Element, int]:
        """Write *element* into the first free element column.

        A blank id or nickname is filled in.  Returns the element as
        written and its column.
        """
        col = self.next_element_column(tab)
        n = col - catalog.element_column(1) + 1
        updates: dict[str, Any] = {}
        if not element.element_id:
            updates["element_id"] = new_id()
        if not element.nickname:
            updates["nickname"] = f"Element {n}"
        element = element.model_copy(update=updates)
        self._write_element_column(tab, col, n, element)
        return element, col

    def _write_element_column(self, tab: str, col: int, n: int, element: Element) -> None:
        with self.grid.batch():
            self.grid.create_section_header(tab, ELEMENT_HEADERS_ROW, col, f"Element {n}")
            for f in ELEMENT_INFO.fields:
                self.grid.set_cell(tab, f.row, col, _cell(getattr(element, f.attr)))
            self._apply_widgets(tab, ELEMENT_INFO.fields, 0, col)
            if element.timeline is not None:
                self._write_timeline(tab, col, element.element_id, element.timeline.model_dump())
            if element.quiz is not None:
                self._write_quiz(tab, col, element.quiz.model_dump())

    def _write_timeline(self, tab: str, col: int, element_id: str, values: Mapping[str, Any]) -> None:
        id_row = TIMELINE.field("ELEMENT_ID").row
        self.grid.set_cell(tab, id_row, col, element_id)
        for key, value in values.items():
            spec = _lookup(TIMELINE, key)
            if spec is None or spec.key == "ELEMENT_ID":
                continue
            self.grid.set_cell(tab, spec.row, col, _cell(value))
            self._apply_widgets(tab, [spec], 0, col)

    def _write_quiz(self, tab: str, col: int, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            spec = _lookup(QUIZ, key)
            if spec is None:
                continue
            self.grid.set_cell(tab, spec.row, col, _cell(value))
            self._apply_widgets(tab, [spec], 0, col)

    def _clear_sub_record(self, tab: str, col: int, sec: SectionSpec) -> None:
        self.grid.clear_range(tab, sec.start_row + 1, col, sec.height - 1, 1)

    def update_element_column(self, tab: str, element_id: str, updates: Mapping[str, Any]) -> bool:
        """Write the given element fields in place.  False if the element is absent.

        ``timeline`` and ``quiz`` take a mapping of sub-record fields, or
        None to clear the sub-record.
        """
        col = self.find_element_column(tab, element_id)
        if col is None:
            return False
        with self.grid.batch():
            for key, value in updates.items():
                norm = _norm(key)
                if norm == "timeline":
                    if value is None:
                        self._clear_sub_record(tab, col, TIMELINE)
                    else:
                        self._write_timeline(tab, col, element_id, _as_dict(value))
                    continue
                if norm == "quiz":
                    if value is None:
                        self._clear_sub_record(tab, col, QUIZ)
                    else:
                        self._write_quiz(tab, col, _as_dict(value))
                    continue
                spec = _lookup(ELEMENT_INFO, key)
                if spec is None or spec.key == "ELEMENT_ID":
                    emit_warning(
                        EventType.element_failed,
                        f"Element field {key!r} ignored",
                        {"tab": tab, "element_id": element_id},
                    )
                    continue
                self.grid.set_cell(tab, spec.row, col, _cell(value))
        return True

    # ------------------------------------------------------------------
    # User tracking
    # ------------------------------------------------------------------

    def write_tracking(self, tab: str, tracking: Tracking) -> bool:
        """Write the project-level tracking settings, adding the section if absent."""
        if not self.grid.has_tab(tab):
            return False
        with self.grid.batch():
            self.reconcile(tab)
            values = tracking.model_dump()
            for f in USER_TRACKING.fields:
                self.grid.set_cell(tab, f.row, USER_TRACKING.value_col, _cell(values[f.attr]))
        return True

    # ------------------------------------------------------------------
    # Bulk replace
    # ------------------------------------------------------------------

    def write_slides_and_elements(
        self,
        tab: str,
        slides: list[Slide] | None,
        elements: list[Element] | None,
    ) -> bool:
        """Replace the slide and/or element collections of a tab wholesale.

        Slides are laid out in ``slide_number`` order; elements in list
        order.  Passing None for a collection leaves it untouched.  There is
        no concurrency token: the last writer wins.
        """
        if not self.grid.has_tab(tab):
            return False
        with self.grid.batch():
            if slides is not None:
                start = SLIDE_INFO.start_row
                last = max(self.grid.last_row(tab), start)
                self.grid.clear_range(tab, start, "A", last - start + 1, 2)
                ordered = sorted(slides, key=lambda s: s.slide_number)
                for i, slide in enumerate(ordered, start=1):
                    if not slide.slide_id:
                        slide = slide.model_copy(update={"slide_id": new_id()})
                    self._write_slide_block(
                        tab, catalog.slide_block_origin(i), slide.slide_number or i, slide
                    )

            if elements is not None:
                start_col = catalog.element_column(1)
                last_col = max(self.grid.last_column(tab), start_col)
                self.grid.clear_range(
                    tab,
                    ELEMENT_BLOCK_START,
                    start_col,
                    ELEMENT_BLOCK_END - ELEMENT_BLOCK_START + 1,
                    last_col - start_col + 1,
                )
                for j, element in enumerate(elements, start=1):
                    if not element.element_id:
                        element = element.model_copy(update={"element_id": new_id()})
                    self._write_element_column(tab, start_col + j - 1, j, element)
        return True

    def touch_modified(self, tab: str, timestamp: int | None = None) -> int:
        """Stamp the tab's modified-at field and return the value written."""
        ts = timestamp if timestamp is not None else now_ms()
        self.write_project_info(tab, {"modified_at": ts})
        return ts
