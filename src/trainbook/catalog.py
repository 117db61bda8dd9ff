"""Static, versioned description of the project tab and the index tab.

A project tab is divided into sections.  Each section is either a fixed
block of label/value rows, a block repeated downward once per slide, or a
block repeated rightward once per element::

    A            B          C   D               E          F ...
    PROJECT INFO                ELEMENT INFO    Element 1  Element 2
    Project Id   <id>           Element Id      <id>       <id>
    ...                         ...
    SLIDE 1 INFO (Required)     TIMELINE        (rows 29-36)
    ...                         QUIZ            (rows 37-49)
    SLIDE 2 INFO (Required)     USER TRACKING   (rows 50-55)

Nothing here touches a workbook; every other layer resolves coordinates
through this module.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict

from trainbook.grid import column_to_index

SCHEMA_VERSION = 2

# Cell holding the schema version a project tab was last reconciled to.
VERSION_CELL = (1, "C")

ELEMENT_START_COL = "E"
ELEMENT_HEADERS_ROW = 1
SLIDE_HEADER_RE = re.compile(r"^SLIDE (\d+) INFO")

DELETED_PREFIX = "[DELETED] "

DEFAULT_COLORS = {
    "BACKGROUND": "#FFFFFF",
    "TEXT": "#000000",
    "ELEMENT": "#4285F4",
    "OUTLINE": "#000000",
}


# ---------------------------------------------------------------------------
# Option lists
# ---------------------------------------------------------------------------

FILE_TYPES = ["Image", "YouTube Video", "Audio"]
ELEMENT_TYPES = ["Rectangle", "Rounded Rectangle", "Circle", "Arrow", "Text", "Hotspot"]
FONTS = ["Roboto", "Arial", "Times New Roman", "Verdana", "Georgia"]
TRIGGER_TYPES = ["Hover", "Click", "Both"]
INTERACTION_TYPES = ["Reveal", "Spotlight", "Pan/Zoom", "Center", "Quiz"]
ANIMATION_TYPES = ["Wiggle", "Float", "Hint", "Grow/Shrink", "None"]
ANIMATION_SPEEDS = ["Slow", "Medium", "Fast"]
ANIMATION_IN_TYPES = ["Fade In", "Slide In", "Pop", "None"]
ANIMATION_OUT_TYPES = ["Fade Out", "Slide Out", "Shrink", "None"]
QUESTION_TYPES = [
    "Multiple choice",
    "True/False",
    "Fill in the blank",
    "Matching",
    "Ordering",
    "Hotspot",
]


# ---------------------------------------------------------------------------
# Catalog types
# ---------------------------------------------------------------------------


class Repeat(str, Enum):
    none = "none"
    rows = "rows"
    columns = "columns"


class ValueKind(str, Enum):
    text = "text"
    int = "int"
    number = "number"
    bool = "bool"


class CellAddress(BaseModel):
    model_config = ConfigDict(frozen=True)

    row: int
    col: int


class SectionBounds(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_row: int
    end_row: int
    start_col: int
    end_col: int


class FieldSpec(BaseModel):
    """One labelled field of a section.

    ``attr`` is the model attribute the value maps to.  ``options`` makes the
    value cell a dropdown; ``checkbox`` makes it a TRUE/FALSE toggle.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    attr: str
    row: int
    kind: ValueKind = ValueKind.text
    options: tuple[str, ...] | None = None
    checkbox: bool = False

    @property
    def label(self) -> str:
        return field_label(self.key)


class SectionSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    header: str
    start_row: int
    end_row: int
    label_col: str
    value_col: str
    end_col: str
    repeat: Repeat = Repeat.none
    since_version: int = 1
    structural: bool = True
    fields: tuple[FieldSpec, ...] = ()

    @property
    def height(self) -> int:
        return self.end_row - self.start_row + 1

    def field(self, key: str) -> FieldSpec:
        for f in self.fields:
            if f.key == key or f.attr == key:
                return f
        raise KeyError(f"Section {self.name} has no field {key!r}")

    def header_text(self, instance: int = 1) -> str:
        """Header for the *instance*-th repeat; slide headers carry the number."""
        if self.repeat is Repeat.rows:
            return self.header.replace("1", str(instance), 1)
        return self.header

    def header_prefix(self) -> str:
        """Header text without the parenthesised qualifier."""
        return self.header.split("(")[0].strip()


def field_label(key: str) -> str:
    """``SLIDE_ID`` -> ``Slide Id``."""
    return " ".join(word.capitalize() for word in key.split("_"))


def _f(key: str, row: int, kind: ValueKind = ValueKind.text, *, attr: str | None = None,
       options: list[str] | None = None, checkbox: bool = False) -> FieldSpec:
    if checkbox:
        kind = ValueKind.bool
    return FieldSpec(
        key=key,
        attr=attr or key.lower(),
        row=row,
        kind=kind,
        options=tuple(options) if options else None,
        checkbox=checkbox,
    )


_N = ValueKind.number
_I = ValueKind.int


# ---------------------------------------------------------------------------
# Project tab layout
# ---------------------------------------------------------------------------

PROJECT_INFO = SectionSpec(
    name="PROJECT_INFO",
    header="PROJECT INFO",
    start_row=1,
    end_row=7,
    label_col="A",
    value_col="B",
    end_col="B",
    fields=(
        _f("PROJECT_ID", 2),
        _f("PROJECT_WEB_APP_URL", 3, attr="web_app_url"),
        _f("TITLE", 4),
        _f("CREATED_AT", 5, _I),
        _f("MODIFIED_AT", 6, _I),
        _f("PROJECT_FOLDER_ID", 7, attr="folder_id"),
    ),
)

SLIDE_INFO = SectionSpec(
    name="SLIDE_INFO",
    header="SLIDE 1 INFO (Required)",
    start_row=8,
    end_row=15,
    label_col="A",
    value_col="B",
    end_col="B",
    repeat=Repeat.rows,
    structural=False,
    fields=(
        _f("SLIDE_ID", 9),
        _f("SLIDE_TITLE", 10, attr="title"),
        _f("BACKGROUND_COLOR", 11),
        _f("FILE_TYPE", 12, options=FILE_TYPES),
        _f("FILE_URL", 13),
        _f("SLIDE_NUMBER", 14, _I),
        _f("SHOW_CONTROLS", 15, checkbox=True),
    ),
)

ELEMENT_INFO = SectionSpec(
    name="ELEMENT_INFO",
    header="ELEMENT INFO",
    start_row=1,
    end_row=28,
    label_col="D",
    value_col=ELEMENT_START_COL,
    end_col="G",
    repeat=Repeat.columns,
    fields=(
        _f("ELEMENT_ID", 2),
        _f("NICKNAME", 3),
        _f("SLIDE_ID", 4),
        _f("SEQUENCE", 5, _I),
        _f("TYPE", 6, options=ELEMENT_TYPES),
        _f("LEFT", 7, _N),
        _f("TOP", 8, _N),
        _f("WIDTH", 9, _N),
        _f("HEIGHT", 10, _N),
        _f("ANGLE", 11, _N),
        _f("INITIALLY_HIDDEN", 12, checkbox=True),
        _f("OPACITY", 13, _N),
        _f("COLOR", 14),
        _f("OUTLINE", 15, checkbox=True),
        _f("OUTLINE_WIDTH", 16, _N),
        _f("OUTLINE_COLOR", 17),
        _f("SHADOW", 18, checkbox=True),
        _f("TEXT", 19),
        _f("FONT", 20, options=FONTS),
        _f("FONT_COLOR", 21),
        _f("FONT_SIZE", 22, _N),
        _f("TRIGGERS", 23, options=TRIGGER_TYPES),
        _f("INTERACTION_TYPE", 24, options=INTERACTION_TYPES),
        _f("TEXT_MODAL", 25, checkbox=True),
        _f("TEXT_MODAL_MESSAGE", 26),
        _f("ANIMATION_TYPE", 27, options=ANIMATION_TYPES),
        _f("ANIMATION_SPEED", 28, options=ANIMATION_SPEEDS),
    ),
)

TIMELINE = SectionSpec(
    name="TIMELINE",
    header="TIMELINE",
    start_row=29,
    end_row=36,
    label_col="D",
    value_col=ELEMENT_START_COL,
    end_col="G",
    repeat=Repeat.columns,
    fields=(
        _f("ELEMENT_ID", 30),
        _f("START_TIME", 31, _N),
        _f("END_TIME", 32, _N),
        _f("PAUSE_AT", 33, checkbox=True),
        _f("SHOW_FOR_DURATION", 34, checkbox=True),
        _f("ANIMATION_IN", 35, options=ANIMATION_IN_TYPES),
        _f("ANIMATION_OUT", 36, options=ANIMATION_OUT_TYPES),
    ),
)

QUIZ = SectionSpec(
    name="QUIZ",
    header="QUIZ",
    start_row=37,
    end_row=49,
    label_col="D",
    value_col=ELEMENT_START_COL,
    end_col="G",
    repeat=Repeat.columns,
    fields=(
        _f("QUESTION_TYPE", 38, options=QUESTION_TYPES),
        _f("QUESTION_TEXT", 39),
        _f("CORRECT_ANSWER", 40),
        _f("INCORRECT_ANSWER_1", 41),
        _f("INCORRECT_ANSWER_2", 42),
        _f("INCORRECT_ANSWER_3", 43),
        _f("INCLUDE_FEEDBACK", 44, checkbox=True),
        _f("CORRECT_FEEDBACK", 45),
        _f("INCORRECT_FEEDBACK", 46),
        _f("POINTS", 47, _N),
        _f("ATTEMPTS", 48, _I),
        _f("PROVIDE_CORRECT_ANSWER", 49, checkbox=True),
    ),
)

USER_TRACKING = SectionSpec(
    name="USER_TRACKING",
    header="USER TRACKING",
    start_row=50,
    end_row=55,
    label_col="D",
    value_col="E",
    end_col="E",
    since_version=2,
    fields=(
        _f("TRACK_COMPLETION", 51, checkbox=True),
        _f("REQUIRE_QUIZ_COMPLETION", 52, checkbox=True),
        _f("PASSING_SCORE", 53, _N),
        _f("SEND_COMPLETION_EMAIL", 54, checkbox=True),
        _f("INSTRUCTOR_EMAIL", 55),
    ),
)

_SECTIONS: tuple[SectionSpec, ...] = (
    PROJECT_INFO,
    SLIDE_INFO,
    ELEMENT_INFO,
    TIMELINE,
    QUIZ,
    USER_TRACKING,
)

# Element, timeline and quiz rows share one column per element.
ELEMENT_BLOCK_START = ELEMENT_INFO.start_row
ELEMENT_BLOCK_END = QUIZ.end_row


# ---------------------------------------------------------------------------
# Index tab layout
# ---------------------------------------------------------------------------

INDEX_TAB = "ProjectIndex"

INDEX_COLUMNS = {
    "PROJECT_ID": 0,
    "TITLE": 1,
    "CREATED_AT": 2,
    "MODIFIED_AT": 3,
    "LAST_ACCESSED": 4,
    "ADMIN_USERS": 5,
}

INDEX_HEADERS = ["Project ID", "Title", "Created At", "Modified At", "Last Accessed", "Admin Users"]


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def sections(version: int = SCHEMA_VERSION) -> list[SectionSpec]:
    """Sections that exist in a tab of the given schema version."""
    return [s for s in _SECTIONS if s.since_version <= version]


def section(name: str) -> SectionSpec:
    for s in _SECTIONS:
        if s.name == name:
            return s
    raise KeyError(f"Unknown section: {name!r}")


def _col(letters: str) -> int:
    return column_to_index(letters)


def field_address(section_name: str, field: str, instance: int = 1) -> CellAddress:
    """Resolve the value cell of *field* in the *instance*-th repeat of a section.

    For row-repeated sections the instance selects the block; for
    column-repeated sections it selects the element column.
    """
    if instance < 1:
        raise ValueError(f"instance must be >= 1, got {instance}")
    sec = section(section_name)
    spec = sec.field(field)
    row = spec.row
    col = _col(sec.value_col)
    if sec.repeat is Repeat.rows:
        row += (instance - 1) * sec.height
    elif sec.repeat is Repeat.columns:
        col += instance - 1
    return CellAddress(row=row, col=col)


def label_address(section_name: str, field: str, instance: int = 1) -> CellAddress:
    sec = section(section_name)
    addr = field_address(section_name, field, instance)
    return CellAddress(row=addr.row, col=_col(sec.label_col))


def header_address(section_name: str, instance: int = 1) -> CellAddress:
    sec = section(section_name)
    row = sec.start_row
    if sec.repeat is Repeat.rows:
        row += (instance - 1) * sec.height
    return CellAddress(row=row, col=_col(sec.label_col))


def section_bounds(section_name: str) -> SectionBounds:
    """Bounds of the first instance of a section."""
    sec = section(section_name)
    return SectionBounds(
        start_row=sec.start_row,
        end_row=sec.end_row,
        start_col=_col(sec.label_col),
        end_col=_col(sec.end_col),
    )


def rows_per_repeat_unit(section_name: str) -> int:
    return section(section_name).height


def slide_block_origin(n: int) -> int:
    """Header row of the *n*-th slide block."""
    return SLIDE_INFO.start_row + (n - 1) * SLIDE_INFO.height


def element_column(n: int) -> int:
    """Column of the *n*-th element slot."""
    return _col(ELEMENT_START_COL) + n - 1


def index_columns() -> dict[str, int]:
    """Index tab columns as 1-based positions."""
    return {k: v + 1 for k, v in INDEX_COLUMNS.items()}


def index_headers() -> list[str]:
    return list(INDEX_HEADERS)


def header_present(cell_text: Any, spec: SectionSpec) -> bool:
    """Whether a header cell counts as carrying *spec*'s header.

    Matching is a case-insensitive prefix test against the header without
    its parenthesised qualifier, so ``"QUIZ"`` and ``"Quiz (legacy)"`` both
    count for the QUIZ section.
    """
    if not isinstance(cell_text, str) or not cell_text.strip():
        return False
    return cell_text.strip().upper().startswith(spec.header_prefix().upper())


def missing_sections(
    present: dict[str, Any] | Iterable[tuple[str, Any]],
    version: int = SCHEMA_VERSION,
) -> list[SectionSpec]:
    """Structural sections of *version* whose header cell is absent.

    *present* maps section name to the text found in that section's header
    cell.  Row-repeated sections are instance data, not structure, and are
    never reported.
    """
    found = dict(present)
    return [
        s for s in sections(version)
        if s.structural and not header_present(found.get(s.name), s)
    ]


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def coerce(kind: ValueKind, raw: Any) -> Any:
    """Convert a raw cell value to the field's Python type.

    Blank cells return None so model defaults apply.
    """
    if kind is ValueKind.bool:
        if isinstance(raw, str):
            return raw.strip().upper() in ("TRUE", "1", "YES")
        return bool(raw)
    if raw is None or raw == "":
        return None
    if kind is ValueKind.int:
        try:
            return int(float(raw))
        except (TypeError, ValueError):
            return None
    if kind is ValueKind.number:
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return raw
        try:
            num = float(raw)
        except (TypeError, ValueError):
            return None
        return int(num) if num.is_integer() else num
    return raw if isinstance(raw, str) else str(raw)
