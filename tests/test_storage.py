"""Tests for local folder storage."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def storage(tmp_path: Path):
    from trainbook.storage import LocalFolderStorage

    return LocalFolderStorage(tmp_path / "storage", owner="owner@example.com")


class TestProjectFolders:
    def test_layout(self, storage):
        folders = storage.create_project_folders("p-1", "Course")

        project = storage.get_folder(folders.project_folder_id)
        media = storage.get_folder(folders.media_folder_id)
        thumbs = storage.get_folder(folders.thumbnails_folder_id)
        root = storage.root_folder()

        assert project.name == "Course (p-1)"
        assert project.parent_id == root.folder_id
        assert media.name == "Media Assets"
        assert media.parent_id == project.folder_id
        assert thumbs.name == "Thumbnails"
        assert thumbs.parent_id == media.folder_id
        assert project.owner == "owner@example.com"
        assert (storage.root / project.folder_id).is_dir()

    def test_root_folder_is_shared(self, storage):
        storage.create_project_folders("p-1", "A")
        storage.create_project_folders("p-2", "B")
        roots = [f for f in storage.list_folders() if f.parent_id is None]
        assert len(roots) == 1
        assert roots[0].name == "Interactive Training Projects"

    def test_metadata_survives_reopen(self, storage):
        from trainbook.storage import LocalFolderStorage

        folders = storage.create_project_folders("p-1", "Course")
        again = LocalFolderStorage(storage.root)
        assert again.get_folder(folders.project_folder_id).name == "Course (p-1)"

    def test_unwritable_root(self, tmp_path: Path):
        from trainbook.errors import StorageError
        from trainbook.storage import LocalFolderStorage

        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StorageError):
            LocalFolderStorage(blocker).create_project_folders("p-1", "Course")


class TestFolderOperations:
    def test_get_missing(self, storage):
        assert storage.get_folder("nope") is None
        assert storage.get_folder("") is None

    def test_rename_and_trash(self, storage):
        folder_id = storage.create_project_folders("p-1", "Course").project_folder_id
        storage.rename_folder(folder_id, "Course 2 (p-1)")
        storage.trash_folder(folder_id)
        folder = storage.get_folder(folder_id)
        assert folder.name == "Course 2 (p-1)"
        assert folder.trashed is True

    def test_mutating_missing_folder_raises(self, storage):
        from trainbook.errors import StorageError

        with pytest.raises(StorageError):
            storage.rename_folder("nope", "x")
        with pytest.raises(StorageError):
            storage.add_editor("nope", "a@example.com")

    def test_write_failure_raises_storage_error(self, storage, monkeypatch):
        from trainbook.errors import StorageError

        folder_id = storage.create_project_folders("p-1", "Course").project_folder_id

        def disk_full(self, *args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(Path, "write_text", disk_full)
        with pytest.raises(StorageError, match="disk full"):
            storage.rename_folder(folder_id, "Course 2 (p-1)")

    def test_editors_and_viewers(self, storage):
        folder_id = storage.create_project_folders("p-1", "Course").project_folder_id
        storage.add_editor(folder_id, "ed@example.com")
        storage.add_editor(folder_id, "ED@example.com")
        storage.add_viewer(folder_id, "v@example.com")

        folder = storage.get_folder(folder_id)
        assert folder.editors == ["ed@example.com"]
        assert folder.has_editor("Ed@Example.com")
        assert folder.has_viewer("v@example.com")

        storage.remove_editor(folder_id, "ED@example.com")
        storage.remove_viewer(folder_id, "v@example.com")
        folder = storage.get_folder(folder_id)
        assert folder.editors == [] and folder.viewers == []

    def test_sharing(self, storage):
        from trainbook.errors import StorageError

        folder_id = storage.create_project_folders("p-1", "Course").project_folder_id
        storage.set_sharing(folder_id, True, "editor")
        folder = storage.get_folder(folder_id)
        assert folder.public is True
        assert folder.public_level == "editor"
        with pytest.raises(StorageError):
            storage.set_sharing(folder_id, True, "owner")
