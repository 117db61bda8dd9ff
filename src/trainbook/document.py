"""Aggregate read/write API for projects stored in workbook tabs.

A project lives in two places: its own tab (named after its title) and a
row in the index tab.  Reads go index -> tab; writes keep the two in step
and always finish by stamping the same modified timestamp in both.

Public methods never raise for routine failures.  Absent projects read as
None; failed writes come back as ``OperationResult(success=False)`` and are
logged as events.
"""

from __future__ import annotations

import traceback
from typing import Any, Mapping

from pydantic import ValidationError

from trainbook import catalog
from trainbook.catalog import (
    DELETED_PREFIX,
    ELEMENT_BLOCK_END,
    ELEMENT_INFO,
    PROJECT_INFO,
    QUIZ,
    SLIDE_INFO,
    TIMELINE,
    USER_TRACKING,
    SectionSpec,
    ValueKind,
)
from trainbook.errors import GridError, TemplateCloneError
from trainbook.grid import GridAccessor
from trainbook.logging.events import (
    FOLDER_CREATE_FAILED,
    FOLDER_RENAME_FAILED,
    FOLDER_TRASH_FAILED,
    GRID_WRITE_FAILED,
    INDEX_WRITE_FAILED,
    TAB_MISSING,
    TAB_RENAME_FAILED,
    EventLevel,
    EventType,
    emit,
    emit_error,
    emit_warning,
    make_project_event,
)
from trainbook.models import (
    Element,
    IndexEntry,
    OperationResult,
    Project,
    ProjectPatch,
    Quiz,
    Slide,
    Timeline,
    Tracking,
    failure,
)
from trainbook.project_index import ProjectIndex
from trainbook.storage import FileStorage
from trainbook.template import DocumentTemplate
from trainbook.utils.ids import folder_name, new_id, now_ms, sanitize_tab_name


def _without_ids(updates: Mapping[str, Any], own_id: str) -> dict[str, Any]:
    """Drop the entity's own id key; ids are never rewritten in place."""
    return {k: v for k, v in updates.items() if k.replace("_", "").lower() != own_id}


def _values(sec: SectionSpec, cells: list[Any], first_row: int) -> dict[str, Any]:
    """Coerce a section's value cells into model attributes.

    *cells* holds the values of rows ``first_row ...`` in order.  Blank cells
    are omitted so model defaults apply.
    """
    out: dict[str, Any] = {}
    for f in sec.fields:
        pos = f.row - first_row
        raw = cells[pos] if 0 <= pos < len(cells) else ""
        value = catalog.coerce(f.kind, raw)
        if value is None:
            continue
        if f.kind is ValueKind.text and not isinstance(value, str):
            value = str(value)
        out[f.attr] = value
    return out


def _invalid(what: str, exc: ValidationError, project_id: str | None = None) -> OperationResult:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return failure(f"Invalid {what}: {problems}", project_id=project_id)


def _has_quiz_content(cells: list[Any]) -> bool:
    return any(v not in ("", None, False) for v in cells)


class ProjectDocument:
    """Projects, their slides and their elements.

    Args:
        grid: Workbook accessor.
        index: The project index.
        template: Tab cloning and block/column writers.
        storage: File storage for project folders.
        publish_base_url: Base of the URL stamped by :meth:`publish`.
    """

    def __init__(
        self,
        grid: GridAccessor,
        index: ProjectIndex,
        template: DocumentTemplate,
        storage: FileStorage,
        *,
        publish_base_url: str | None = None,
    ) -> None:
        self.grid = grid
        self.index = index
        self.template = template
        self.storage = storage
        self.publish_base_url = publish_base_url

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def tab_for(self, project_id: str) -> str | None:
        """Tab name of an indexed project, whether or not the tab exists."""
        entry = self.index.get(project_id)
        return sanitize_tab_name(entry.title) if entry else None

    def _existing_tab(self, project_id: str) -> str | None:
        tab = self.tab_for(project_id)
        return tab if tab and self.grid.has_tab(tab) else None

    def folder_id(self, project_id: str) -> str | None:
        """Storage folder of a project, or None when unknown."""
        tab = self._existing_tab(project_id)
        if tab is None:
            return None
        addr = catalog.field_address(PROJECT_INFO.name, "PROJECT_FOLDER_ID")
        value = self.grid.get_cell(tab, addr.row, addr.col)
        return str(value) if value not in ("", None) else None

    def touch(self, project_id: str, tab: str) -> int:
        """Stamp one modified timestamp in both the tab and the index row."""
        ts = self.template.touch_modified(tab)
        self.index.set_field(project_id, "MODIFIED_AT", ts)
        return ts

    def _event(
        self,
        event_type: EventType,
        message: str,
        project_id: str,
        *,
        level: EventLevel = EventLevel.info,
        tab: str | None = None,
        error_code: str | None = None,
        **extra: Any,
    ) -> None:
        emit(
            make_project_event(
                event_type,
                level,
                message,
                project_id=project_id,
                tab=tab,
                error_code=error_code,
                extra=extra or None,
            )
        )

    def _crash(self, event_type: EventType, action: str, project_id: str | None, exc: Exception) -> OperationResult:
        emit_error(
            event_type,
            f"{action} failed: {exc}",
            {"project_id": project_id, "traceback": traceback.format_exc()},
            error_code=GRID_WRITE_FAILED,
        )
        return failure(f"{action} failed: {exc}", project_id=project_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read_info(self, tab: str) -> dict[str, Any]:
        cells = self.grid.get_range(tab, PROJECT_INFO.start_row, PROJECT_INFO.value_col, PROJECT_INFO.height, 1)
        return _values(PROJECT_INFO, [r[0] for r in cells or []], PROJECT_INFO.start_row)

    def read_slides(self, tab: str) -> list[Slide]:
        """Slides in ``slide_number`` order, whatever their block order."""
        slides = []
        for row, n in self.template.slide_blocks(tab):
            cells = self.grid.get_range(tab, row, SLIDE_INFO.value_col, SLIDE_INFO.height, 1) or []
            values = _values(SLIDE_INFO, [r[0] for r in cells], SLIDE_INFO.start_row)
            values.setdefault("slide_number", n)
            slides.append(Slide(**values))
        return sorted(slides, key=lambda s: s.slide_number)

    def read_elements(self, tab: str) -> list[Element]:
        """Elements in column order; columns with a blank id are skipped."""
        start = catalog.element_column(1)
        last = self.grid.last_column(tab)
        if last < start:
            return []
        block = self.grid.get_range(tab, 1, start, ELEMENT_BLOCK_END, last - start + 1) or []
        id_row = ELEMENT_INFO.field("ELEMENT_ID").row
        elements = []
        for j in range(last - start + 1):
            column = [row[j] for row in block]
            element_id = column[id_row - 1]
            if element_id == "":
                continue
            values = _values(ELEMENT_INFO, column, 1)
            values["element_id"] = str(element_id)

            timeline_id_row = TIMELINE.field("ELEMENT_ID").row
            if str(column[timeline_id_row - 1]) == values["element_id"]:
                values["timeline"] = Timeline(**_values(TIMELINE, column, 1))

            quiz_cells = column[QUIZ.start_row:QUIZ.end_row]
            if values.get("interaction_type") == "Quiz" and _has_quiz_content(quiz_cells):
                values["quiz"] = Quiz(**_values(QUIZ, column, 1))
            elements.append(Element(**values))
        return elements

    def read_tracking(self, tab: str) -> Tracking | None:
        header = catalog.header_address(USER_TRACKING.name)
        if not catalog.header_present(self.grid.get_cell(tab, header.row, header.col), USER_TRACKING):
            return None
        cells = self.grid.get_range(tab, USER_TRACKING.start_row, USER_TRACKING.value_col, USER_TRACKING.height, 1) or []
        return Tracking(**_values(USER_TRACKING, [r[0] for r in cells], USER_TRACKING.start_row))

    def load(self, project_id: str) -> Project | None:
        """Assemble a project from its index row and tab.

        Returns None when the index has no such project.  When the index row
        exists but the tab does not, the project comes back with ``error``
        set and no slides or elements.
        """
        entry = self.index.get(project_id)
        if entry is None:
            return None
        tab = sanitize_tab_name(entry.title)
        if not self.grid.has_tab(tab):
            self._event(
                EventType.project_inconsistent,
                f"Index row present but tab {tab!r} is missing",
                project_id,
                level=EventLevel.warning,
                tab=tab,
                error_code=TAB_MISSING,
            )
            return Project(
                project_id=project_id,
                title=entry.title,
                created_at=entry.created_at,
                modified_at=entry.modified_at,
                last_accessed=entry.last_accessed,
                tab_name=tab,
                error=f"Project tab {tab!r} not found",
            )

        info = self.read_info(tab)
        return Project(
            project_id=project_id,
            title=info.get("title", entry.title),
            created_at=info.get("created_at", entry.created_at),
            modified_at=info.get("modified_at", entry.modified_at),
            last_accessed=entry.last_accessed,
            folder_id=info.get("folder_id", ""),
            web_app_url=info.get("web_app_url", ""),
            tab_name=tab,
            slides=self.read_slides(tab),
            elements=self.read_elements(tab),
            tracking=self.read_tracking(tab),
        )

    def list_projects(self) -> list[IndexEntry]:
        return self.index.list_all()

    def open(self, project_id: str) -> Project | None:
        """Load a project and record that it was accessed."""
        project = self.load(project_id)
        if project is None:
            return None
        ts = now_ms()
        self.index.set_field(project_id, "LAST_ACCESSED", ts)
        self._event(EventType.project_opened, "Project opened", project_id, tab=project.tab_name)
        return project.model_copy(update={"last_accessed": ts})

    # ------------------------------------------------------------------
    # Project lifecycle
    # ------------------------------------------------------------------

    def create(self, title: str) -> OperationResult:
        """Create the tab, then the folders, then the index row.

        If the folders cannot be created the new tab is deleted again.  If
        the index row cannot be written the tab is deleted and the folders
        are trashed.  A failed create leaves neither a tab nor an index row
        behind.
        """
        title = (title or "").strip()
        if not title:
            return failure("Project name cannot be empty")

        project_id = new_id()
        try:
            tab = self.template.create_from_template(title, project_id)
        except TemplateCloneError as exc:
            return failure(str(exc))

        try:
            folders = self.storage.create_project_folders(project_id, title)
        except Exception as exc:
            self.grid.delete_tab(tab)
            self._event(
                EventType.project_create_failed,
                f"Folder creation failed, tab removed: {exc}",
                project_id,
                level=EventLevel.error,
                tab=tab,
                error_code=FOLDER_CREATE_FAILED,
            )
            return failure(f"Failed to create project folders: {exc}")

        try:
            self.template.write_project_info(tab, {"folder_id": folders.project_folder_id})
            info = self.read_info(tab)
            self.index.upsert(
                IndexEntry(
                    project_id=project_id,
                    title=title,
                    created_at=info.get("created_at"),
                    modified_at=info.get("modified_at"),
                    last_accessed=info.get("created_at"),
                )
            )
        except Exception as exc:
            self.grid.delete_tab(tab)
            self.index.delete_row(project_id)
            self._event(
                EventType.project_create_failed,
                f"Index registration failed, tab removed: {exc}",
                project_id,
                level=EventLevel.error,
                tab=tab,
                error_code=INDEX_WRITE_FAILED,
            )
            self._trash_folder(project_id, folders.project_folder_id)
            return failure(f"Failed to register project: {exc}")

        self._event(EventType.project_created, f"Created project {title!r}", project_id, tab=tab)
        return OperationResult(
            success=True,
            message="Project created",
            project_id=project_id,
            project_tab_name=tab,
            project_folder_id=folders.project_folder_id,
            media_folder_id=folders.media_folder_id,
        )

    def _trash_folder(self, project_id: str, folder_id: str) -> None:
        try:
            self.storage.trash_folder(folder_id)
        except Exception as exc:
            emit_warning(
                EventType.storage_warning,
                f"Could not trash folder: {exc}",
                {"project_id": project_id, "folder_id": folder_id},
                error_code=FOLDER_TRASH_FAILED,
            )

    def _rename(self, project_id: str, entry: IndexEntry, tab: str, title: str) -> tuple[str, bool]:
        """Rename tab, title field and folder.

        Returns the tab name now in use and whether the title changed.  When
        the tab cannot be renamed, the title stays as it was so the index
        keeps pointing at an existing tab.  The folder rename is attempted
        either way.
        """
        new_tab = sanitize_tab_name(title)
        renamed = False
        try:
            renamed = new_tab == tab or self.grid.rename_tab(tab, new_tab)
        except GridError as exc:
            emit_warning(
                EventType.project_update_failed,
                f"Could not rename tab: {exc}",
                {"project_id": project_id, "tab": tab},
                error_code=TAB_RENAME_FAILED,
            )
        if renamed:
            self.template.write_project_info(new_tab, {"title": title})
            self.index.set_field(project_id, "TITLE", title)
            self._event(
                EventType.project_renamed,
                f"Renamed {entry.title!r} to {title!r}",
                project_id,
                tab=new_tab,
                old_tab=tab,
            )
            tab = new_tab
        else:
            emit_warning(
                EventType.project_update_failed,
                f"Tab {new_tab!r} unavailable; title left as {entry.title!r}",
                {"project_id": project_id, "tab": tab},
                error_code=TAB_RENAME_FAILED,
            )

        folder_id = self.folder_id(project_id)
        if folder_id:
            try:
                self.storage.rename_folder(folder_id, folder_name(title, project_id))
            except Exception as exc:
                emit_warning(
                    EventType.storage_warning,
                    f"Could not rename folder: {exc}",
                    {"project_id": project_id, "folder_id": folder_id},
                    error_code=FOLDER_RENAME_FAILED,
                )
        return tab, renamed

    def update(self, project_id: str, patch: ProjectPatch | Mapping[str, Any]) -> OperationResult:
        """Apply a title change and/or wholesale slide and element replacement."""
        if not isinstance(patch, ProjectPatch):
            try:
                patch = ProjectPatch.model_validate(dict(patch))
            except ValidationError as exc:
                return _invalid("project update", exc, project_id)
        entry = self.index.get(project_id)
        if entry is None:
            return failure("Project not found", project_id=project_id)
        tab = sanitize_tab_name(entry.title)
        if not self.grid.has_tab(tab):
            return failure(f"Project tab {tab!r} not found", project_id=project_id)

        updated: list[str] = []
        try:
            with self.grid.batch():
                if patch.title is not None and patch.title.strip() and patch.title != entry.title:
                    tab, renamed = self._rename(project_id, entry, tab, patch.title.strip())
                    if renamed:
                        updated.append("title")
                if patch.web_app_url is not None:
                    self.template.write_project_info(tab, {"web_app_url": patch.web_app_url})
                    updated.append("webAppUrl")
                if patch.slides is not None or patch.elements is not None:
                    self.template.write_slides_and_elements(tab, patch.slides, patch.elements)
                    if patch.slides is not None:
                        updated.append("slides")
                    if patch.elements is not None:
                        updated.append("elements")
                if patch.tracking is not None:
                    self.template.write_tracking(tab, patch.tracking)
                    updated.append("tracking")
                self.touch(project_id, tab)
        except Exception as exc:
            return self._crash(EventType.project_update_failed, "Update project", project_id, exc)

        self._event(EventType.project_updated, "Project updated", project_id, tab=tab, fields=updated)
        return OperationResult(
            success=True,
            message="Project updated",
            project_id=project_id,
            project_tab_name=tab,
            updated_fields=updated,
        )

    def delete(self, project_id: str, purge_storage: bool = False) -> OperationResult:
        """Remove the tab and index row; optionally trash the folder.

        Deleting a project that is already gone succeeds.
        """
        entry = self.index.get(project_id)
        if entry is None:
            emit_warning(
                EventType.index_row_missing,
                f"Delete of unknown project {project_id}",
                {"project_id": project_id},
            )
            return OperationResult(success=True, message="Project already deleted", project_id=project_id)

        tab = sanitize_tab_name(entry.title)
        folder_id = self.folder_id(project_id)
        try:
            with self.grid.batch():
                if not self.grid.delete_tab(tab):
                    emit_warning(
                        EventType.project_delete_failed,
                        f"Tab {tab!r} was already missing",
                        {"project_id": project_id, "tab": tab},
                        error_code=TAB_MISSING,
                    )
                self.index.delete_row(project_id)
        except Exception as exc:
            return self._crash(EventType.project_delete_failed, "Delete project", project_id, exc)

        if purge_storage and folder_id:
            self._trash_folder(project_id, folder_id)

        self._event(EventType.project_deleted, f"Deleted project {entry.title!r}", project_id, tab=tab)
        return OperationResult(success=True, message="Project deleted", project_id=project_id)

    def publish(self, project_id: str, base_url: str | None = None) -> OperationResult:
        """Stamp the viewer URL ``<base>?project=<id>`` on the project."""
        base = base_url or self.publish_base_url
        if not base:
            return failure("No publish base URL configured", project_id=project_id)
        tab = self._existing_tab(project_id)
        if tab is None:
            return failure("Project not found", project_id=project_id)
        url = f"{base}?project={project_id}"
        try:
            with self.grid.batch():
                self.template.write_project_info(tab, {"web_app_url": url})
                self.touch(project_id, tab)
        except Exception as exc:
            return self._crash(EventType.project_update_failed, "Publish project", project_id, exc)
        self._event(EventType.project_published, "Project published", project_id, tab=tab, url=url)
        return OperationResult(success=True, message="Project published", project_id=project_id, web_app_url=url)

    def update_tracking(self, project_id: str, tracking: Tracking | Mapping[str, Any]) -> OperationResult:
        if not isinstance(tracking, Tracking):
            try:
                tracking = Tracking.model_validate(dict(tracking))
            except ValidationError as exc:
                return _invalid("tracking settings", exc, project_id)
        tab = self._existing_tab(project_id)
        if tab is None:
            return failure("Project not found", project_id=project_id)
        try:
            with self.grid.batch():
                self.template.write_tracking(tab, tracking)
                self.touch(project_id, tab)
        except Exception as exc:
            return self._crash(EventType.project_update_failed, "Update tracking", project_id, exc)
        self._event(EventType.tracking_updated, "Tracking settings updated", project_id, tab=tab)
        return OperationResult(success=True, message="Tracking updated", project_id=project_id)

    # ------------------------------------------------------------------
    # Slides
    # ------------------------------------------------------------------

    def add_slide(self, project_id: str, data: Slide | Mapping[str, Any] | None = None) -> OperationResult:
        """Append a slide block.  Number and title default to the next ordinal."""
        tab = self._existing_tab(project_id)
        if tab is None:
            return failure("Project not found", project_id=project_id)
        try:
            slide = data if isinstance(data, Slide) else Slide.model_validate(dict(data or {}))
        except ValidationError as exc:
            return _invalid("slide", exc, project_id)
        n = self.template.count_slides(tab) + 1
        defaults: dict[str, Any] = {"slide_id": slide.slide_id or new_id()}
        if "slide_number" not in slide.model_fields_set:
            defaults["slide_number"] = n
        if not slide.title:
            defaults["title"] = f"Slide {n}"
        slide = slide.model_copy(update=defaults)
        try:
            with self.grid.batch():
                slide = self.template.insert_slide_block(tab, slide)
                self.touch(project_id, tab)
        except Exception as exc:
            return self._crash(EventType.slide_failed, "Add slide", project_id, exc)
        self._event(EventType.slide_added, f"Added slide {slide.title!r}", project_id, tab=tab, slide_id=slide.slide_id)
        return OperationResult(success=True, message="Slide added", project_id=project_id, slide=slide)

    def _find_slide(self, tab: str, slide_id: str) -> Slide | None:
        return next((s for s in self.read_slides(tab) if s.slide_id == slide_id), None)

    def update_slide(self, project_id: str, slide_id: str, updates: Mapping[str, Any]) -> OperationResult:
        tab = self._existing_tab(project_id)
        if tab is None:
            return failure("Project not found", project_id=project_id)
        updates = _without_ids(updates, "slideid")
        try:
            with self.grid.batch():
                if not self.template.update_slide_block(tab, slide_id, updates):
                    return failure("Slide not found", project_id=project_id)
                self.touch(project_id, tab)
        except Exception as exc:
            return self._crash(EventType.slide_failed, "Update slide", project_id, exc)
        self._event(EventType.slide_updated, "Slide updated", project_id, tab=tab, slide_id=slide_id)
        return OperationResult(
            success=True,
            message="Slide updated",
            project_id=project_id,
            updated_fields=list(updates),
            slide=self._find_slide(tab, slide_id),
        )

    def delete_slide(self, project_id: str, slide_id: str) -> OperationResult:
        """Mark a slide deleted by prefixing its title; its block stays in place."""
        tab = self._existing_tab(project_id)
        if tab is None:
            return failure("Project not found", project_id=project_id)
        slide = self._find_slide(tab, slide_id)
        if slide is None:
            return failure("Slide not found", project_id=project_id)
        if slide.deleted:
            return OperationResult(success=True, message="Slide already deleted", project_id=project_id, slide=slide)
        try:
            with self.grid.batch():
                self.template.update_slide_block(tab, slide_id, {"title": DELETED_PREFIX + slide.title})
                self.touch(project_id, tab)
        except Exception as exc:
            return self._crash(EventType.slide_failed, "Delete slide", project_id, exc)
        self._event(EventType.slide_deleted, "Slide deleted", project_id, tab=tab, slide_id=slide_id)
        return OperationResult(
            success=True,
            message="Slide deleted",
            project_id=project_id,
            slide=self._find_slide(tab, slide_id),
        )

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    def add_element(
        self,
        project_id: str,
        slide_id: str,
        data: Element | Mapping[str, Any] | None = None,
    ) -> OperationResult:
        """Write an element into the first free element column.

        ``sequence`` defaults to one past the number of elements already on
        the slide.
        """
        tab = self._existing_tab(project_id)
        if tab is None:
            return failure("Project not found", project_id=project_id)
        try:
            element = data if isinstance(data, Element) else Element.model_validate(dict(data or {}))
        except ValidationError as exc:
            return _invalid("element", exc, project_id)
        existing = self.read_elements(tab)
        defaults: dict[str, Any] = {
            "slide_id": slide_id,
            "element_id": element.element_id or new_id(),
        }
        if "sequence" not in element.model_fields_set:
            defaults["sequence"] = sum(1 for e in existing if e.slide_id == slide_id) + 1
        if not element.nickname:
            defaults["nickname"] = f"Element {len(existing) + 1}"
        element = element.model_copy(update=defaults)
        try:
            with self.grid.batch():
                element, col = self.template.insert_element_column(tab, element)
                self.touch(project_id, tab)
        except Exception as exc:
            return self._crash(EventType.element_failed, "Add element", project_id, exc)
        self._event(
            EventType.element_added,
            f"Added element {element.nickname!r}",
            project_id,
            tab=tab,
            element_id=element.element_id,
            column=col,
        )
        return OperationResult(success=True, message="Element added", project_id=project_id, element=element)

    def _find_element(self, tab: str, element_id: str) -> Element | None:
        return next((e for e in self.read_elements(tab) if e.element_id == element_id), None)

    def update_element(self, project_id: str, element_id: str, updates: Mapping[str, Any]) -> OperationResult:
        tab = self._existing_tab(project_id)
        if tab is None:
            return failure("Project not found", project_id=project_id)
        updates = _without_ids(updates, "elementid")
        try:
            with self.grid.batch():
                if not self.template.update_element_column(tab, element_id, updates):
                    return failure("Element not found", project_id=project_id)
                self.touch(project_id, tab)
        except Exception as exc:
            return self._crash(EventType.element_failed, "Update element", project_id, exc)
        self._event(EventType.element_updated, "Element updated", project_id, tab=tab, element_id=element_id)
        return OperationResult(
            success=True,
            message="Element updated",
            project_id=project_id,
            updated_fields=list(updates),
            element=self._find_element(tab, element_id),
        )

    def delete_element(self, project_id: str, element_id: str) -> OperationResult:
        """Mark an element deleted: prefixed nickname, zero opacity, hidden."""
        tab = self._existing_tab(project_id)
        if tab is None:
            return failure("Project not found", project_id=project_id)
        element = self._find_element(tab, element_id)
        if element is None:
            return failure("Element not found", project_id=project_id)
        nickname = element.nickname if element.deleted else DELETED_PREFIX + element.nickname
        try:
            with self.grid.batch():
                self.template.update_element_column(
                    tab,
                    element_id,
                    {"nickname": nickname, "opacity": 0, "initially_hidden": True},
                )
                self.touch(project_id, tab)
        except Exception as exc:
            return self._crash(EventType.element_failed, "Delete element", project_id, exc)
        self._event(EventType.element_deleted, "Element deleted", project_id, tab=tab, element_id=element_id)
        return OperationResult(
            success=True,
            message="Element deleted",
            project_id=project_id,
            element=self._find_element(tab, element_id),
        )
