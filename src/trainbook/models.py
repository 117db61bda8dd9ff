"""Domain models for projects, slides, elements and their sub-records.

Attributes are snake_case in Python and camelCase on the wire
(``slideNumber``, ``initiallyHidden``), so request payloads from the editor
validate directly.
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from trainbook.catalog import DEFAULT_COLORS, DELETED_PREFIX

Number = Union[int, float]


class StoreModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        """Wire representation: camelCase keys, JSON-compatible values."""
        return self.model_dump(by_alias=True, mode="json")


class Timeline(StoreModel):
    element_id: str = ""
    start_time: Number | None = None
    end_time: Number | None = None
    pause_at: bool = False
    show_for_duration: bool = False
    animation_in: str = ""
    animation_out: str = ""


class Quiz(StoreModel):
    question_type: str = ""
    question_text: str = ""
    correct_answer: str = ""
    incorrect_answer_1: str = Field(default="", alias="incorrectAnswer1")
    incorrect_answer_2: str = Field(default="", alias="incorrectAnswer2")
    incorrect_answer_3: str = Field(default="", alias="incorrectAnswer3")
    include_feedback: bool = False
    correct_feedback: str = ""
    incorrect_feedback: str = ""
    points: Number | None = None
    attempts: int | None = None
    provide_correct_answer: bool = False


class Tracking(StoreModel):
    track_completion: bool = False
    require_quiz_completion: bool = False
    passing_score: Number | None = None
    send_completion_email: bool = False
    instructor_email: str = ""


class Slide(StoreModel):
    slide_id: str = ""
    slide_number: int = 1
    title: str = ""
    background_color: str = DEFAULT_COLORS["BACKGROUND"]
    file_type: str = ""
    file_url: str = ""
    show_controls: bool = False

    @computed_field
    @property
    def deleted(self) -> bool:
        return self.title.startswith(DELETED_PREFIX)


class Element(StoreModel):
    element_id: str = ""
    nickname: str = ""
    slide_id: str = ""
    sequence: int = 1
    type: str = "Rectangle"
    left: Number = 100
    top: Number = 100
    width: Number = 100
    height: Number = 60
    angle: Number = 0
    initially_hidden: bool = False
    opacity: Number = 100
    color: str = DEFAULT_COLORS["ELEMENT"]
    outline: bool = False
    outline_width: Number = 1
    outline_color: str = DEFAULT_COLORS["OUTLINE"]
    shadow: bool = False
    text: str = ""
    font: str = "Roboto"
    font_color: str = DEFAULT_COLORS["TEXT"]
    font_size: Number = 14
    triggers: str = "Click"
    interaction_type: str = "Reveal"
    text_modal: bool = False
    text_modal_message: str = ""
    animation_type: str = "None"
    animation_speed: str = "Medium"
    timeline: Timeline | None = None
    quiz: Quiz | None = None

    @computed_field
    @property
    def deleted(self) -> bool:
        return self.nickname.startswith(DELETED_PREFIX)


class IndexEntry(StoreModel):
    project_id: str
    title: str = ""
    created_at: int | None = None
    modified_at: int | None = None
    last_accessed: int | None = None
    admin_users: str = ""

    def admins(self) -> list[str]:
        return [e.strip() for e in self.admin_users.split(",") if e.strip()]


class Project(StoreModel):
    """A project as assembled from its index row and its tab.

    ``error`` is set when the index row exists but the tab does not.
    """

    project_id: str
    title: str = ""
    created_at: int | None = None
    modified_at: int | None = None
    last_accessed: int | None = None
    folder_id: str = Field(default="", alias="projectFolderId")
    web_app_url: str = Field(default="", alias="webAppUrl")
    tab_name: str = Field(default="", alias="projectTabName")
    slides: list[Slide] = Field(default_factory=list)
    elements: list[Element] = Field(default_factory=list)
    tracking: Tracking | None = None
    error: str | None = None


class ProjectPatch(StoreModel):
    """Fields accepted by a project update; absent fields are left alone."""

    title: str | None = None
    web_app_url: str | None = Field(default=None, alias="webAppUrl")
    slides: list[Slide] | None = None
    elements: list[Element] | None = None
    tracking: Tracking | None = None


class OperationResult(StoreModel):
    """Outcome of a mutating store operation."""

    success: bool
    message: str = ""
    project_id: str | None = None
    project_tab_name: str | None = None
    project_folder_id: str | None = None
    media_folder_id: str | None = None
    web_app_url: str | None = None
    updated_fields: list[str] | None = None
    slide: Slide | None = None
    element: Element | None = None
    project: Project | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


def failure(message: str, **fields: Any) -> OperationResult:
    return OperationResult(success=False, message=message, **fields)
