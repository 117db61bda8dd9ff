"""Effective access levels for projects and the action permission table.

A level is resolved from three unrelated authorities:

- the workbook's owner (``owner``),
- the project's admin list in the index tab (``admin``),
- the project folder's sharing lists, or workbook editorship when the
  project has no folder.

Each authority is a provider returning an :class:`AccessLevel` or None.
The resolver takes the highest level any provider reports.  A provider
that fails reports None, so a broken lookup can only lower a level.
"""

from __future__ import annotations

import traceback
from enum import IntEnum
from typing import Callable, Iterable, Protocol

from trainbook.errors import StorageError
from trainbook.identity import DocumentSharing
from trainbook.logging.events import (
    ACCESS_LOOKUP_FAILED,
    ACCESS_UPDATE_FAILED,
    EventType,
    emit_error,
    emit_info,
    emit_warning,
)
from trainbook.project_index import ProjectIndex
from trainbook.storage import FileStorage


class AccessLevel(IntEnum):
    none = 0
    viewer = 1
    editor = 2
    admin = 3
    owner = 4

    def __str__(self) -> str:
        return self.name


_ALL = frozenset(AccessLevel) - {AccessLevel.none}
_EDIT = frozenset({AccessLevel.owner, AccessLevel.admin, AccessLevel.editor})
_MANAGE = frozenset({AccessLevel.owner, AccessLevel.admin})

# An empty set means any authenticated identity may perform the action.
ACTION_PERMISSIONS: dict[str, frozenset[AccessLevel]] = {
    "project.get": _ALL,
    "project.list": frozenset(),
    "project.create": frozenset(),
    "project.update": _EDIT,
    "project.delete": _MANAGE,
    "slide.add": _EDIT,
    "slide.update": _EDIT,
    "slide.delete": _EDIT,
    "element.add": _EDIT,
    "element.update": _EDIT,
    "element.delete": _EDIT,
    "media.process": _EDIT,
    "tracking.saveProgress": _ALL,
    "tracking.getProgress": _ALL,
    "analytics.getProjectData": _EDIT,
    "admin.addUser": _MANAGE,
    "admin.removeUser": _MANAGE,
}


class AccessProvider(Protocol):
    def __call__(self, project_id: str, identity: str) -> AccessLevel | None: ...


def highest(levels: Iterable[AccessLevel | None]) -> AccessLevel:
    """Reduce provider answers to a single level; no answer means ``none``."""
    return max((lv for lv in levels if lv is not None), default=AccessLevel.none)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def document_owner_provider(sharing: DocumentSharing) -> AccessProvider:
    def provide(project_id: str, identity: str) -> AccessLevel | None:
        return AccessLevel.owner if sharing.is_owner(identity) else None

    return provide


def admin_list_provider(index: ProjectIndex) -> AccessProvider:
    def provide(project_id: str, identity: str) -> AccessLevel | None:
        wanted = identity.strip().lower()
        if any(a.lower() == wanted for a in index.admins(project_id)):
            return AccessLevel.admin
        return None

    return provide


def folder_acl_provider(
    storage: FileStorage,
    folder_of: Callable[[str], str | None],
    sharing: DocumentSharing,
) -> AccessProvider:
    """Folder owner/editor/viewer lists, then public sharing.

    A project without a folder falls back to workbook editorship.
    """

    def provide(project_id: str, identity: str) -> AccessLevel | None:
        folder_id = folder_of(project_id)
        folder = storage.get_folder(folder_id) if folder_id else None
        if folder is None:
            return AccessLevel.editor if sharing.is_editor(identity) else None
        if folder.owner and folder.owner.lower() == identity.strip().lower():
            return AccessLevel.owner
        if folder.has_editor(identity):
            return AccessLevel.editor
        if folder.has_viewer(identity):
            return AccessLevel.viewer
        if folder.public:
            return AccessLevel.viewer
        return None

    return provide


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class AccessResolver:
    """Resolves access levels and manages project sharing.

    Args:
        sharing: Workbook owner and editors.
        index: Project index, for admin lists.
        storage: File storage, for folder sharing lists.
        folder_of: Maps a project id to its folder id (None when unknown).
        providers: Overrides the default provider chain.
    """

    def __init__(
        self,
        sharing: DocumentSharing,
        index: ProjectIndex,
        storage: FileStorage,
        folder_of: Callable[[str], str | None],
        providers: list[AccessProvider] | None = None,
    ) -> None:
        self.sharing = sharing
        self.index = index
        self.storage = storage
        self.folder_of = folder_of
        self.providers = providers if providers is not None else [
            document_owner_provider(sharing),
            admin_list_provider(index),
            folder_acl_provider(storage, folder_of, sharing),
        ]

    def _ask(self, provider: AccessProvider, project_id: str, identity: str) -> AccessLevel | None:
        try:
            return provider(project_id, identity)
        except Exception:
            emit_error(
                EventType.access_error,
                f"Access lookup failed for project {project_id}",
                {"project_id": project_id, "identity": identity, "traceback": traceback.format_exc()},
                error_code=ACCESS_LOOKUP_FAILED,
            )
            return None

    def level_for(self, project_id: str, identity: str) -> AccessLevel:
        if not identity:
            return AccessLevel.none
        return highest(self._ask(p, project_id, identity) for p in self.providers)

    def has_access(self, project_id: str, identity: str) -> bool:
        return self.level_for(project_id, identity) > AccessLevel.none

    def can_perform_action(self, action: str, project_id: str | None, identity: str) -> bool:
        """Whether *identity* may perform *action*.

        Unknown actions and actions with an empty allow-list are open to any
        authenticated identity.  Without a project id, only the workbook
        owner and editors may act.
        """
        if not identity:
            return False
        allowed = ACTION_PERMISSIONS.get(action)
        if not allowed:
            return True
        if project_id:
            return self.level_for(project_id, identity) in allowed
        return self.sharing.is_owner(identity) or self.sharing.is_editor(identity)

    # ------------------------------------------------------------------
    # Sharing management
    # ------------------------------------------------------------------

    def _changed(self, project_id: str, identity: str, change: str) -> None:
        emit_info(
            EventType.access_changed,
            f"{change} for {identity} on project {project_id}",
            {"project_id": project_id, "identity": identity, "change": change},
        )

    def _failed(self, project_id: str, identity: str, change: str, exc: Exception) -> bool:
        emit_error(
            EventType.access_error,
            f"{change} failed for project {project_id}: {exc}",
            {"project_id": project_id, "identity": identity, "change": change},
            error_code=ACCESS_UPDATE_FAILED,
        )
        return False

    def add_project_admin(self, project_id: str, identity: str) -> bool:
        """Add *identity* to the admin list and, when there is a folder, as a folder editor."""
        try:
            if not self.index.find(project_id).found:
                return False
            admins = self.index.admins(project_id)
            if identity.lower() not in (a.lower() for a in admins):
                self.index.set_admins(project_id, admins + [identity])
            folder_id = self.folder_of(project_id)
            if folder_id:
                try:
                    self.storage.add_editor(folder_id, identity)
                except StorageError as exc:
                    emit_warning(
                        EventType.storage_warning,
                        f"Could not add folder editor: {exc}",
                        {"project_id": project_id, "identity": identity},
                    )
        except Exception as exc:
            return self._failed(project_id, identity, "add admin", exc)
        self._changed(project_id, identity, "add admin")
        return True

    def remove_project_admin(self, project_id: str, identity: str) -> bool:
        try:
            if not self.index.find(project_id).found:
                return False
            wanted = identity.strip().lower()
            kept = [a for a in self.index.admins(project_id) if a.lower() != wanted]
            self.index.set_admins(project_id, kept)
        except Exception as exc:
            return self._failed(project_id, identity, "remove admin", exc)
        self._changed(project_id, identity, "remove admin")
        return True

    def _folder_change(
        self, project_id: str, identity: str, change: str, op: Callable[[str], None]
    ) -> bool:
        try:
            folder_id = self.folder_of(project_id)
            if not folder_id:
                return False
            op(folder_id)
        except Exception as exc:
            return self._failed(project_id, identity, change, exc)
        self._changed(project_id, identity, change)
        return True

    def add_project_editor(self, project_id: str, identity: str) -> bool:
        return self._folder_change(
            project_id, identity, "add editor", lambda f: self.storage.add_editor(f, identity)
        )

    def add_project_viewer(self, project_id: str, identity: str) -> bool:
        return self._folder_change(
            project_id, identity, "add viewer", lambda f: self.storage.add_viewer(f, identity)
        )

    def remove_project_access(self, project_id: str, identity: str) -> bool:
        """Drop *identity* from the admin list and from the folder's sharing lists."""
        self.remove_project_admin(project_id, identity)

        def drop(folder_id: str) -> None:
            self.storage.remove_editor(folder_id, identity)
            self.storage.remove_viewer(folder_id, identity)

        return self._folder_change(project_id, identity, "remove access", drop)

    def set_project_sharing(self, project_id: str, public: bool, level: str = "viewer") -> bool:
        return self._folder_change(
            project_id,
            "*",
            f"sharing public={public} level={level}",
            lambda f: self.storage.set_sharing(f, public, level),
        )
