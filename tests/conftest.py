"""Shared fixtures: an in-memory workbook wired to local folder storage."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

OWNER = "owner@example.com"
EDITOR = "editor@example.com"


@dataclass
class Store:
    grid: object
    index: object
    template: object
    storage: object
    document: object
    access: object
    service: object
    sharing: object


def make_store(tmp_path: Path, storage=None, *, editors: list[str] | None = None) -> Store:
    from trainbook.access import AccessResolver
    from trainbook.document import ProjectDocument
    from trainbook.grid import GridAccessor
    from trainbook.identity import DocumentSharing
    from trainbook.project_index import ProjectIndex
    from trainbook.service import ProjectService
    from trainbook.storage import LocalFolderStorage
    from trainbook.template import DocumentTemplate

    grid = GridAccessor()
    template = DocumentTemplate(grid)
    template.build_master()
    index = ProjectIndex(grid)
    index.ensure()
    if storage is None:
        storage = LocalFolderStorage(tmp_path / "storage", owner=OWNER)
    sharing = DocumentSharing(owner=OWNER, editors=editors if editors is not None else [EDITOR])
    document = ProjectDocument(
        grid, index, template, storage, publish_base_url="https://example.com/exec"
    )
    access = AccessResolver(sharing, index, storage, document.folder_id)
    return Store(
        grid=grid,
        index=index,
        template=template,
        storage=storage,
        document=document,
        access=access,
        service=ProjectService(document, access),
        sharing=sharing,
    )


@pytest.fixture(autouse=True)
def _detached_sink():
    """Keep the module-level event sink from leaking between tests."""
    from trainbook.logging import reset_sink

    reset_sink()
    yield
    reset_sink()


@pytest.fixture
def store(tmp_path: Path) -> Store:
    return make_store(tmp_path)


@pytest.fixture
def project(store: Store) -> str:
    """Id of a freshly created project titled "Course"."""
    result = store.document.create("Course")
    assert result.success, result.message
    return result.project_id
