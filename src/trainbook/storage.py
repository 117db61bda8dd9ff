"""File-storage collaborator: project folders and their sharing lists.

:class:`FileStorage` is the interface the document store consumes.
:class:`LocalFolderStorage` implements it over a directory, keeping one
YAML metadata file per folder::

    <storage_root>/
      folders/
        <folder_id>.yaml    # name, parent, owner, editors, viewers, sharing
      <folder_id>/          # folder contents (media, thumbnails)
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import yaml
from pydantic import BaseModel, Field

from trainbook.errors import StorageError
from trainbook.utils.ids import folder_name, new_id

THUMBNAIL_FOLDER_NAME = "Thumbnails"

SHARING_LEVELS = ("viewer", "editor")


class Folder(BaseModel):
    folder_id: str
    name: str
    parent_id: str | None = None
    owner: str = ""
    editors: list[str] = Field(default_factory=list)
    viewers: list[str] = Field(default_factory=list)
    public: bool = False
    public_level: str = "viewer"
    trashed: bool = False

    def has_editor(self, identity: str) -> bool:
        return _contains(self.editors, identity)

    def has_viewer(self, identity: str) -> bool:
        return _contains(self.viewers, identity)


class ProjectFolders(BaseModel):
    project_folder_id: str
    media_folder_id: str
    thumbnails_folder_id: str | None = None


def _contains(emails: list[str], identity: str) -> bool:
    wanted = identity.strip().lower()
    return any(e.lower() == wanted for e in emails)


class FileStorage(Protocol):
    """Operations the store needs from a file-storage service.

    Lookups return None for an absent folder; mutations raise
    :class:`~trainbook.errors.StorageError`.
    """

    def create_project_folders(self, project_id: str, title: str) -> ProjectFolders: ...

    def get_folder(self, folder_id: str) -> Folder | None: ...

    def rename_folder(self, folder_id: str, name: str) -> None: ...

    def trash_folder(self, folder_id: str) -> None: ...

    def add_editor(self, folder_id: str, identity: str) -> None: ...

    def add_viewer(self, folder_id: str, identity: str) -> None: ...

    def remove_editor(self, folder_id: str, identity: str) -> None: ...

    def remove_viewer(self, folder_id: str, identity: str) -> None: ...

    def set_sharing(self, folder_id: str, public: bool, level: str = "viewer") -> None: ...


class LocalFolderStorage:
    """:class:`FileStorage` backed by a local directory tree."""

    def __init__(
        self,
        root: Path,
        owner: str = "",
        *,
        root_folder_name: str = "Interactive Training Projects",
        media_folder_name: str = "Media Assets",
    ) -> None:
        self.root = Path(root)
        self.owner = owner
        self.root_folder_name = root_folder_name
        self.media_folder_name = media_folder_name
        self._meta_dir = self.root / "folders"

    # ------------------------------------------------------------------
    # Metadata files
    # ------------------------------------------------------------------

    def _meta_path(self, folder_id: str) -> Path:
        return self._meta_dir / f"{folder_id}.yaml"

    def _save(self, folder: Folder) -> None:
        try:
            self._meta_dir.mkdir(parents=True, exist_ok=True)
            self._meta_path(folder.folder_id).write_text(
                yaml.safe_dump(folder.model_dump(), sort_keys=False)
            )
        except OSError as exc:
            raise StorageError(f"Failed to save folder {folder.folder_id}: {exc}") from exc

    def _load(self, folder_id: str) -> Folder:
        folder = self.get_folder(folder_id)
        if folder is None:
            raise StorageError(f"Folder not found: {folder_id}")
        return folder

    def _create(self, name: str, parent_id: str | None) -> Folder:
        folder = Folder(folder_id=new_id(), name=name, parent_id=parent_id, owner=self.owner)
        (self.root / folder.folder_id).mkdir(parents=True, exist_ok=True)
        self._save(folder)
        return folder

    def list_folders(self) -> list[Folder]:
        if not self._meta_dir.exists():
            return []
        out = []
        for path in sorted(self._meta_dir.glob("*.yaml")):
            data = yaml.safe_load(path.read_text()) or {}
            out.append(Folder(**data))
        return out

    # ------------------------------------------------------------------
    # FileStorage
    # ------------------------------------------------------------------

    def root_folder(self) -> Folder:
        """The top-level application folder, created on first use."""
        for folder in self.list_folders():
            if folder.parent_id is None and folder.name == self.root_folder_name and not folder.trashed:
                return folder
        return self._create(self.root_folder_name, None)

    def create_project_folders(self, project_id: str, title: str) -> ProjectFolders:
        """Create ``<title> (<id>)`` with a media folder and a thumbnails folder inside it."""
        try:
            root = self.root_folder()
            project = self._create(folder_name(title, project_id), root.folder_id)
            media = self._create(self.media_folder_name, project.folder_id)
            thumbs = self._create(THUMBNAIL_FOLDER_NAME, media.folder_id)
        except OSError as exc:
            raise StorageError(f"Failed to create folders for {project_id}: {exc}") from exc
        return ProjectFolders(
            project_folder_id=project.folder_id,
            media_folder_id=media.folder_id,
            thumbnails_folder_id=thumbs.folder_id,
        )

    def get_folder(self, folder_id: str) -> Folder | None:
        if not folder_id:
            return None
        path = self._meta_path(folder_id)
        if not path.exists():
            return None
        data = yaml.safe_load(path.read_text()) or {}
        return Folder(**data)

    def rename_folder(self, folder_id: str, name: str) -> None:
        folder = self._load(folder_id)
        self._save(folder.model_copy(update={"name": name}))

    def trash_folder(self, folder_id: str) -> None:
        folder = self._load(folder_id)
        self._save(folder.model_copy(update={"trashed": True}))

    def add_editor(self, folder_id: str, identity: str) -> None:
        folder = self._load(folder_id)
        if not folder.has_editor(identity):
            folder.editors.append(identity)
            self._save(folder)

    def add_viewer(self, folder_id: str, identity: str) -> None:
        folder = self._load(folder_id)
        if not folder.has_viewer(identity):
            folder.viewers.append(identity)
            self._save(folder)

    def remove_editor(self, folder_id: str, identity: str) -> None:
        folder = self._load(folder_id)
        folder.editors = [e for e in folder.editors if e.lower() != identity.strip().lower()]
        self._save(folder)

    def remove_viewer(self, folder_id: str, identity: str) -> None:
        folder = self._load(folder_id)
        folder.viewers = [e for e in folder.viewers if e.lower() != identity.strip().lower()]
        self._save(folder)

    def set_sharing(self, folder_id: str, public: bool, level: str = "viewer") -> None:
        if level not in SHARING_LEVELS:
            raise StorageError(f"Unsupported sharing level: {level!r}")
        folder = self._load(folder_id)
        self._save(folder.model_copy(update={"public": public, "public_level": level}))
