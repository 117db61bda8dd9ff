"""Request-facing handlers and workspace wiring.

Every handler takes a plain request dict (camelCase keys, as sent by the
editor) and the caller's identity, and returns::

    {"success": True, "data": ...}
    {"success": False, "error": "..."}
    {"success": False, "error": "Authorization denied.", "requireAuth": True}

Handlers never raise.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

from trainbook.access import AccessResolver
from trainbook.config import load_workspace_config, storage_path, workbook_path
from trainbook.document import ProjectDocument
from trainbook.errors import RequestError
from trainbook.grid import GridAccessor
from trainbook.identity import DocumentSharing, EnvIdentity, IdentityService
from trainbook.logging import set_workspace_dir
from trainbook.logging.events import EventType, emit_error, emit_info, emit_warning
from trainbook.models import OperationResult
from trainbook.project_index import ProjectIndex
from trainbook.storage import FileStorage, LocalFolderStorage
from trainbook.template import DocumentTemplate

Request = Mapping[str, Any]
Response = dict[str, Any]

DENIED = "Authorization denied."

# Actions that do not name a project.
_WORKSPACE_ACTIONS = {"project.list", "project.create"}


def _require(request: Request, key: str) -> Any:
    value = request.get(key)
    if value in (None, ""):
        raise RequestError(f"Missing required parameter: {key}")
    return value


def _require_updates(request: Request, what: str = "") -> dict[str, Any]:
    updates = request.get("updates") or {}
    if not updates:
        raise RequestError(f"No updates provided{' for ' + what if what else ''}")
    return dict(updates)


def _data(result: Any) -> Any:
    """Unwrap a handler result into the response payload."""
    if isinstance(result, OperationResult):
        if not result.success:
            raise RequestError(result.message or "Operation failed")
        if result.project is not None:
            return result.project.to_dict()
        if result.slide is not None:
            return result.slide.to_dict()
        if result.element is not None:
            return result.element.to_dict()
        data = result.to_dict()
        data.pop("success", None)
        return data
    return result


class ProjectService:
    """Authorizes requests, then delegates to the document store."""

    def __init__(self, document: ProjectDocument, access: AccessResolver) -> None:
        self.document = document
        self.access = access

    def _handle(
        self,
        action: str,
        request: Request | None,
        identity: str,
        handler: Callable[[Request, str], Any],
    ) -> Response:
        request = dict(request or {})
        try:
            project_id = None
            if action not in _WORKSPACE_ACTIONS:
                project_id = _require(request, "projectId")
            if not self.access.can_perform_action(action, project_id, identity):
                emit_warning(
                    EventType.access_denied,
                    f"{identity or 'anonymous'} denied {action}",
                    {"project_id": project_id, "identity": identity, "action": action},
                )
                return {"success": False, "error": DENIED, "requireAuth": True}
            return {"success": True, "data": _data(handler(request, identity))}
        except RequestError as exc:
            emit_warning(
                EventType.request_failed,
                f"{action} rejected: {exc}",
                {"project_id": request.get("projectId"), "action": action},
            )
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            emit_error(
                EventType.request_failed,
                f"{action} failed: {exc}",
                {
                    "project_id": request.get("projectId"),
                    "action": action,
                    "traceback": traceback.format_exc(),
                },
            )
            return {"success": False, "error": f"Server error: {exc}"}

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def get_project(self, request: Request, identity: str) -> Response:
        def run(req: Request, _: str) -> Any:
            project_id = req["projectId"]
            project = self.document.load(project_id)
            if project is None:
                raise RequestError(f"Project not found: {project_id}")
            if project.error:
                raise RequestError(f"Error retrieving project {project_id}: {project.error}")
            return project.to_dict()

        return self._handle("project.get", request, identity, run)

    def list_projects(self, request: Request | None, identity: str) -> Response:
        """Index entries of every project *identity* can see."""

        def run(req: Request, who: str) -> Any:
            return [
                e.to_dict()
                for e in self.document.list_projects()
                if self.access.has_access(e.project_id, who)
            ]

        return self._handle("project.list", request, identity, run)

    def create_project(self, request: Request, identity: str) -> Response:
        """Create a project; the creator becomes one of its admins."""

        def run(req: Request, who: str) -> Any:
            result = self.document.create(_require(req, "name"))
            if result.success and result.project_id:
                self.access.add_project_admin(result.project_id, who)
            return result

        return self._handle("project.create", request, identity, run)

    def update_project(self, request: Request, identity: str) -> Response:
        def run(req: Request, _: str) -> Any:
            return self.document.update(req["projectId"], _require_updates(req))

        return self._handle("project.update", request, identity, run)

    def delete_project(self, request: Request, identity: str) -> Response:
        def run(req: Request, _: str) -> Any:
            return self.document.delete(req["projectId"], bool(req.get("deleteDriveFiles", False)))

        return self._handle("project.delete", request, identity, run)

    def publish_project(self, request: Request, identity: str) -> Response:
        def run(req: Request, _: str) -> Any:
            return self.document.publish(req["projectId"], req.get("baseUrl"))

        return self._handle("project.update", request, identity, run)

    def auth_status(self, request: Request | None, identity: str) -> Response:
        """Who the caller is and, when a project is named, their level on it."""
        request = dict(request or {})
        project_id = request.get("projectId")
        level = self.access.level_for(project_id, identity) if project_id else None
        return {
            "success": True,
            "data": {
                "isAuthenticated": bool(identity),
                "user": identity,
                "projectId": project_id,
                "hasAccess": bool(identity) if level is None else bool(level),
                "accessLevel": str(level) if level is not None else "none",
            },
        }

    # ------------------------------------------------------------------
    # Slides
    # ------------------------------------------------------------------

    def add_slide(self, request: Request, identity: str) -> Response:
        def run(req: Request, _: str) -> Any:
            return self.document.add_slide(req["projectId"], req.get("slide") or {})

        return self._handle("slide.add", request, identity, run)

    def update_slide(self, request: Request, identity: str) -> Response:
        def run(req: Request, _: str) -> Any:
            slide_id = _require(req, "slideId")
            return self.document.update_slide(req["projectId"], slide_id, _require_updates(req, "slide"))

        return self._handle("slide.update", request, identity, run)

    def delete_slide(self, request: Request, identity: str) -> Response:
        def run(req: Request, _: str) -> Any:
            return self.document.delete_slide(req["projectId"], _require(req, "slideId"))

        return self._handle("slide.delete", request, identity, run)

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    def add_element(self, request: Request, identity: str) -> Response:
        def run(req: Request, _: str) -> Any:
            slide_id = _require(req, "slideId")
            return self.document.add_element(req["projectId"], slide_id, req.get("element") or {})

        return self._handle("element.add", request, identity, run)

    def update_element(self, request: Request, identity: str) -> Response:
        def run(req: Request, _: str) -> Any:
            element_id = _require(req, "elementId")
            return self.document.update_element(
                req["projectId"], element_id, _require_updates(req, "element")
            )

        return self._handle("element.update", request, identity, run)

    def delete_element(self, request: Request, identity: str) -> Response:
        def run(req: Request, _: str) -> Any:
            return self.document.delete_element(req["projectId"], _require(req, "elementId"))

        return self._handle("element.delete", request, identity, run)


# ---------------------------------------------------------------------------
# Workspace wiring
# ---------------------------------------------------------------------------


@dataclass
class Workspace:
    """The component graph for one workspace directory, built once."""

    root: Path
    config: dict[str, Any]
    grid: GridAccessor
    index: ProjectIndex
    template: DocumentTemplate
    storage: FileStorage
    document: ProjectDocument
    access: AccessResolver
    service: ProjectService
    identity: IdentityService


def open_workspace(
    workspace_dir: Path,
    *,
    identity: IdentityService | None = None,
    storage: FileStorage | None = None,
) -> Workspace:
    """Load config, open the workbook and wire every component.

    The master tab and index tab are created on first open.
    """
    root = Path(workspace_dir).resolve()
    set_workspace_dir(root)
    config = load_workspace_config(root)

    grid = GridAccessor.open(workbook_path(root, config), autosave=bool(config.get("autosave", True)))
    sharing = DocumentSharing.from_config(config)
    if storage is None:
        storage = LocalFolderStorage(
            storage_path(root, config),
            owner=sharing.owner or "",
            root_folder_name=config["root_folder_name"],
            media_folder_name=config["media_folder_name"],
        )

    index = ProjectIndex(grid, config["index_tab"])
    template = DocumentTemplate(grid, config["master_tab"])
    with grid.batch():
        template.build_master()
        index.ensure()

    document = ProjectDocument(
        grid, index, template, storage, publish_base_url=config.get("publish_base_url")
    )
    access = AccessResolver(sharing, index, storage, document.folder_id)
    service = ProjectService(document, access)

    emit_info(
        EventType.workspace_initialized,
        f"Opened workspace {root}",
        {"workbook": str(grid.path), "projects": len(index.list_all())},
    )
    return Workspace(
        root=root,
        config=config,
        grid=grid,
        index=index,
        template=template,
        storage=storage,
        document=document,
        access=access,
        service=service,
        identity=identity or EnvIdentity(config.get("identity_env") or "TRAINBOOK_USER"),
    )
