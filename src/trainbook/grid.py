"""Primitive tab, cell, range and validation operations over an xlsx workbook.

The accessor knows nothing about projects or slides.  Rows and columns are
1-based; a column may be given as an integer or as letters (``"E"``,
``"AA"``).  Operations that target a missing tab return ``None`` / ``False``
instead of raising, so callers can treat absence as a routine outcome.

Reads never grow the sheet: anything outside the current extent reads as an
empty string.
"""

from __future__ import annotations

import re
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import MergedCell
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.datavalidation import DataValidation
from openpyxl.worksheet.worksheet import Worksheet

from trainbook.errors import GridError

SECTION_HEADER_BG = "E0E0E0"

_COL_RE = re.compile(r"^[A-Z]+$")

Column = int | str


# ---------------------------------------------------------------------------
# Column letter helpers
# ---------------------------------------------------------------------------


def column_to_index(letters: str) -> int:
    """Convert column letter(s) to a 1-based index.  A=1, Z=26, AA=27."""
    letters = letters.strip().upper()
    if not _COL_RE.match(letters):
        raise ValueError(f"Invalid column letters: {letters!r}")
    idx = 0
    for ch in letters:
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx


def index_to_column(idx: int) -> str:
    """Convert a 1-based column index to letter(s).  1=A, 26=Z, 27=AA."""
    if idx < 1:
        raise ValueError(f"Column index must be >= 1, got {idx}")
    result = ""
    n = idx
    while n > 0:
        n, rem = divmod(n - 1, 26)
        result = chr(65 + rem) + result
    return result


def normalize_column(col: Column) -> int:
    """Return *col* as a 1-based integer index."""
    if isinstance(col, str):
        return column_to_index(col)
    if col < 1:
        raise ValueError(f"Column index must be >= 1, got {col}")
    return col


def _empty(value: Any) -> bool:
    return value is None or value == ""


# ---------------------------------------------------------------------------
# GridAccessor
# ---------------------------------------------------------------------------


class GridAccessor:
    """Read/write access to the named tabs of one workbook.

    When bound to a *path*, every mutating call saves the workbook unless
    the call happens inside :meth:`batch`.
    """

    def __init__(
        self,
        workbook: Workbook | None = None,
        path: Path | None = None,
        *,
        autosave: bool = True,
    ) -> None:
        if workbook is None:
            workbook = Workbook()
            workbook.remove(workbook.active)
        self._wb = workbook
        self.path = Path(path) if path is not None else None
        self.autosave = autosave
        self._batch_depth = 0

    @classmethod
    def open(cls, path: Path, *, autosave: bool = True) -> GridAccessor:
        """Open the workbook at *path*, or start an empty one bound to it."""
        path = Path(path)
        if path.exists():
            return cls(load_workbook(str(path)), path, autosave=autosave)
        return cls(None, path, autosave=autosave)

    @property
    def workbook(self) -> Workbook:
        return self._wb

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Write the workbook to its path (no-op when unbound or empty)."""
        if self.path is None or not self._wb.worksheets:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._wb.save(str(self.path))

    @contextmanager
    def batch(self) -> Iterator[GridAccessor]:
        """Defer saving until the outermost ``batch()`` block exits."""
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self.autosave:
                self.save()

    def _touch(self) -> None:
        if self.autosave and self._batch_depth == 0:
            self.save()

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    def list_tabs(self) -> list[str]:
        return list(self._wb.sheetnames)

    def _sheet_name(self, name: str) -> str | None:
        """Actual name of the tab called *name*; sheet names ignore case."""
        if name in self._wb.sheetnames:
            return name
        folded = name.casefold()
        return next((s for s in self._wb.sheetnames if s.casefold() == folded), None)

    def has_tab(self, name: str) -> bool:
        return self._sheet_name(name) is not None

    def find_tab(self, name: str, create_if_missing: bool = False) -> Worksheet | None:
        """Return the worksheet called *name*, creating it when allowed."""
        actual = self._sheet_name(name)
        if actual is not None:
            return self._wb[actual]
        if not create_if_missing:
            return None
        ws = self._wb.create_sheet(title=name)
        self._touch()
        return ws

    @staticmethod
    def _set_title(ws: Worksheet, name: str) -> None:
        # openpyxl appends a digit instead of failing on a clash.
        ws.title = name
        if ws.title != name:
            raise GridError(f"Tab name {name!r} is already taken", tab=ws.title)

    def clone_tab(self, source: str, new_name: str) -> bool:
        """Copy *source* (values, styles, merges, validations) to *new_name*.

        Returns False when the source is missing or the target exists.
        """
        src = self.find_tab(source)
        if src is None or self.has_tab(new_name):
            return False
        ws = self._wb.copy_worksheet(src)
        try:
            self._set_title(ws, new_name)
        except (ValueError, GridError) as exc:
            self._wb.remove(ws)
            raise GridError(f"Invalid tab name {new_name!r}: {exc}") from exc
        for dv in src.data_validations.dataValidation:
            ws.add_data_validation(
                DataValidation(
                    type=dv.type,
                    formula1=dv.formula1,
                    allow_blank=dv.allow_blank,
                    sqref=str(dv.sqref),
                )
            )
        self._touch()
        return True

    def delete_tab(self, name: str) -> bool:
        ws = self.find_tab(name)
        if ws is None:
            return False
        self._wb.remove(ws)
        self._touch()
        return True

    def rename_tab(self, old: str, new: str) -> bool:
        """Rename a tab.  Returns False if *old* is missing or *new* is taken.

        A rename that only changes case goes through a temporary name.
        """
        ws = self.find_tab(old)
        if ws is None:
            return False
        if ws.title == new:
            return True
        other = self.find_tab(new)
        if other is not None and other is not ws:
            return False
        try:
            if ws.title.casefold() == new.casefold():
                self._set_title(ws, "~" + uuid.uuid4().hex[:16])
            self._set_title(ws, new)
        except ValueError as exc:
            raise GridError(f"Cannot rename to {new!r}: {exc}", tab=old) from exc
        self._touch()
        return True

    # ------------------------------------------------------------------
    # Extent
    # ------------------------------------------------------------------

    def last_row(self, tab: str) -> int:
        """Return the last row holding a value, or 0 for an empty/missing tab."""
        ws = self.find_tab(tab)
        if ws is None:
            return 0
        last = 0
        for r, row in enumerate(ws.iter_rows(values_only=True), start=1):
            if any(not _empty(v) for v in row):
                last = r
        return last

    def last_column(self, tab: str) -> int:
        """Return the last column holding a value, or 0 for an empty/missing tab."""
        ws = self.find_tab(tab)
        if ws is None:
            return 0
        last = 0
        for row in ws.iter_rows(values_only=True):
            for c in range(len(row), last, -1):
                if not _empty(row[c - 1]):
                    last = c
                    break
        return last

    # ------------------------------------------------------------------
    # Cells and ranges
    # ------------------------------------------------------------------

    def get_cell(self, tab: str, row: int, col: Column) -> Any:
        """Return the value at (row, col), ``""`` when empty, None if no tab."""
        ws = self.find_tab(tab)
        if ws is None:
            return None
        c = normalize_column(col)
        if row > ws.max_row or c > ws.max_column:
            return ""
        value = ws.cell(row=row, column=c).value
        return "" if value is None else value

    def set_cell(self, tab: str, row: int, col: Column, value: Any) -> bool:
        ws = self.find_tab(tab)
        if ws is None:
            return False
        self._assign(ws, row, normalize_column(col), value)
        self._touch()
        return True

    def get_range(
        self, tab: str, row: int, col: Column, num_rows: int, num_cols: int
    ) -> list[list[Any]] | None:
        """Return a *num_rows* x *num_cols* block of values.

        Cells outside the current extent read as ``""``.
        """
        ws = self.find_tab(tab)
        if ws is None:
            return None
        c0 = normalize_column(col)
        out = [["" for _ in range(num_cols)] for _ in range(num_rows)]
        max_r = min(row + num_rows - 1, ws.max_row)
        max_c = min(c0 + num_cols - 1, ws.max_column)
        if max_r < row or max_c < c0:
            return out
        for i, values in enumerate(
            ws.iter_rows(min_row=row, max_row=max_r, min_col=c0, max_col=max_c, values_only=True)
        ):
            for j, v in enumerate(values):
                out[i][j] = "" if v is None else v
        return out

    def set_range(self, tab: str, row: int, col: Column, values: Sequence[Sequence[Any]]) -> bool:
        """Write a 2-D block of *values* with its top-left corner at (row, col)."""
        ws = self.find_tab(tab)
        if ws is None:
            return False
        c0 = normalize_column(col)
        for i, row_values in enumerate(values):
            for j, v in enumerate(row_values):
                self._assign(ws, row + i, c0 + j, v)
        self._touch()
        return True

    def append_row(self, tab: str, values: Sequence[Any]) -> int | None:
        """Write *values* on the row after the last populated one.

        Returns the row index written, or None when the tab is missing.
        """
        ws = self.find_tab(tab)
        if ws is None:
            return None
        target = self.last_row(tab) + 1
        for j, v in enumerate(values, start=1):
            self._assign(ws, target, j, v)
        self._touch()
        return target

    def find_first_empty_row(self, tab: str, col: Column = 1, start_row: int = 1) -> int | None:
        """First row at or after *start_row* whose cell in *col* is empty."""
        ws = self.find_tab(tab)
        if ws is None:
            return None
        c = normalize_column(col)
        last = self.last_row(tab)
        for r in range(start_row, last + 1):
            if _empty(self.get_cell(tab, r, c)):
                return r
        return max(last + 1, start_row)

    def insert_rows(self, tab: str, after_row: int, count: int = 1) -> bool:
        ws = self.find_tab(tab)
        if ws is None or count < 1 or after_row < 0:
            return False
        ws.insert_rows(after_row + 1, count)
        self._touch()
        return True

    def delete_rows(self, tab: str, start_row: int, count: int = 1) -> bool:
        """Delete rows; False when the tab is missing or the row is out of range."""
        ws = self.find_tab(tab)
        if ws is None or count < 1:
            return False
        if start_row < 1 or start_row > self.last_row(tab):
            return False
        ws.delete_rows(start_row, count)
        self._touch()
        return True

    def clear_range(self, tab: str, row: int, col: Column, num_rows: int, num_cols: int) -> bool:
        """Blank the values of a block, unmerging any merge inside it."""
        ws = self.find_tab(tab)
        if ws is None:
            return False
        c0 = normalize_column(col)
        r1, c1 = row + num_rows - 1, c0 + num_cols - 1
        for rng in list(ws.merged_cells.ranges):
            if rng.min_row >= row and rng.max_row <= r1 and rng.min_col >= c0 and rng.max_col <= c1:
                ws.unmerge_cells(rng.coord)
        for r in range(row, min(r1, ws.max_row) + 1):
            for c in range(c0, min(c1, ws.max_column) + 1):
                cell = ws.cell(row=r, column=c)
                if not isinstance(cell, MergedCell):
                    cell.value = None
        self._touch()
        return True

    # ------------------------------------------------------------------
    # Formatting and validation widgets
    # ------------------------------------------------------------------

    def create_section_header(
        self, tab: str, row: int, col: Column, text: str, span: int = 1
    ) -> bool:
        """Write a bold, shaded header; merge it across *span* columns."""
        ws = self.find_tab(tab)
        if ws is None:
            return False
        c = normalize_column(col)
        self._assign(ws, row, c, text)
        if span > 1:
            if not any(rng.min_row == row and rng.min_col == c for rng in ws.merged_cells.ranges):
                ws.merge_cells(start_row=row, start_column=c, end_row=row, end_column=c + span - 1)
        cell = ws.cell(row=row, column=c)
        cell.font = Font(bold=True)
        cell.fill = PatternFill(fill_type="solid", fgColor=SECTION_HEADER_BG)
        cell.alignment = Alignment(horizontal="center")
        self._touch()
        return True

    def create_dropdown(self, tab: str, row: int, col: Column, options: Sequence[str]) -> bool:
        """Attach a list validation offering *options* to one cell."""
        ws = self.find_tab(tab)
        if ws is None:
            return False
        formula = '"' + ",".join(options) + '"'
        self._validation(ws, formula).add(self._coord(row, col))
        self._touch()
        return True

    def create_checkbox(self, tab: str, row: int, col: Column, checked: bool = False) -> bool:
        """Attach a TRUE/FALSE validation; seed the value when the cell is empty."""
        ws = self.find_tab(tab)
        if ws is None:
            return False
        c = normalize_column(col)
        self._validation(ws, '"TRUE,FALSE"').add(self._coord(row, c))
        cell = ws.cell(row=row, column=c)
        if not isinstance(cell, MergedCell) and cell.value is None:
            cell.value = bool(checked)
        self._touch()
        return True

    def validation_options(self, tab: str, row: int, col: Column) -> list[str] | None:
        """Return the options of the list validation covering a cell, if any."""
        ws = self.find_tab(tab)
        if ws is None:
            return None
        coord = self._coord(row, col)
        for dv in ws.data_validations.dataValidation:
            if dv.type == "list" and dv.formula1 and coord in dv.sqref:
                return dv.formula1.strip('"').split(",")
        return None

    def set_column_width(self, tab: str, col: Column, width: float) -> bool:
        ws = self.find_tab(tab)
        if ws is None:
            return False
        ws.column_dimensions[index_to_column(normalize_column(col))].width = width
        self._touch()
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _coord(row: int, col: Column) -> str:
        return f"{index_to_column(normalize_column(col))}{row}"

    @staticmethod
    def _validation(ws: Worksheet, formula: str) -> DataValidation:
        """Return the sheet's list validation for *formula*, creating it once."""
        for dv in ws.data_validations.dataValidation:
            if dv.type == "list" and dv.formula1 == formula:
                return dv
        dv = DataValidation(type="list", formula1=formula, allow_blank=True)
        ws.add_data_validation(dv)
        return dv

    @staticmethod
    def _assign(ws: Worksheet, row: int, col: int, value: Any) -> None:
        cell = ws.cell(row=row, column=col)
        if isinstance(cell, MergedCell):
            if _empty(value):
                return
            for rng in list(ws.merged_cells.ranges):
                if rng.min_row <= row <= rng.max_row and rng.min_col <= col <= rng.max_col:
                    ws.unmerge_cells(rng.coord)
            cell = ws.cell(row=row, column=col)
        cell.value = None if _empty(value) else value
