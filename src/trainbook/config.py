"""Workspace-level configuration and scaffolding."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


CONFIG_FILENAME = "trainbook.yaml"

DEFAULT_CONFIG = {
    "workbook": "trainbook.xlsx",
    "master_tab": "Template",
    "index_tab": "ProjectIndex",
    "storage_root": "storage",
    "root_folder_name": "Interactive Training Projects",
    "media_folder_name": "Media Assets",
    "document_owner": None,
    "document_editors": [],
    "publish_base_url": None,
    "identity_env": "TRAINBOOK_USER",
    "autosave": True,
    "logging_max_days": None,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}


def _flatten_sharing_block(user_config: dict[str, Any]) -> dict[str, Any]:
    """Flatten a nested ``sharing:`` block into flat config keys.

    Supports::

        sharing:
          owner: owner@example.com
          editors: [a@example.com, b@example.com]

    Maps to ``document_owner`` and ``document_editors``.  A comma-joined
    string is accepted for ``editors``.
    """
    sharing = user_config.pop("sharing", None)
    if not isinstance(sharing, dict):
        return user_config

    if "owner" in sharing:
        user_config["document_owner"] = sharing["owner"]
    if "editors" in sharing:
        editors = sharing["editors"] or []
        if isinstance(editors, str):
            editors = [e.strip() for e in editors.split(",") if e.strip()]
        user_config["document_editors"] = list(editors)

    return user_config


DEMO_CONFIG = """\
# trainbook workspace configuration
workbook: trainbook.xlsx
master_tab: Template
index_tab: ProjectIndex
storage_root: storage

sharing:
  owner: {owner}
  editors: []

# Base URL used when publishing a project for viewers.
publish_base_url: http://localhost:8080/exec

logging_fsync: false
"""


def load_workspace_config(workspace_dir: Path) -> dict[str, Any]:
    """Load workspace configuration from ``trainbook.yaml``, with defaults.

    Supports both flat sharing keys (``document_owner``) and a nested
    ``sharing:`` block.  The nested block is flattened before merging.

    Args:
        workspace_dir: Root of the trainbook workspace.

    Returns:
        Merged configuration dict.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = Path(workspace_dir) / CONFIG_FILENAME
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        user_config = _flatten_sharing_block(user_config)
        config.update(user_config)
    return config


def workbook_path(workspace_dir: Path, config: dict[str, Any] | None = None) -> Path:
    """Return the absolute path of the workspace's ``.xlsx`` file."""
    config = config if config is not None else load_workspace_config(workspace_dir)
    path = Path(config["workbook"])
    return path if path.is_absolute() else Path(workspace_dir) / path


def storage_path(workspace_dir: Path, config: dict[str, Any] | None = None) -> Path:
    """Return the absolute path of the local folder-storage root."""
    config = config if config is not None else load_workspace_config(workspace_dir)
    path = Path(config["storage_root"])
    return path if path.is_absolute() else Path(workspace_dir) / path


def scaffold_workspace(target_dir: Path, owner: str = "owner@example.com") -> Path:
    """Create a new trainbook workspace at the target directory.

    Writes ``trainbook.yaml`` and creates the ``logs/`` and storage
    directories.  The workbook itself is created on first open.

    Args:
        target_dir: Directory to create (must not already contain trainbook.yaml).
        owner: Identity recorded as the workbook owner.

    Returns:
        Path to the created workspace directory.
    """
    target_dir = Path(target_dir).resolve()
    target_dir.mkdir(parents=True, exist_ok=True)

    if (target_dir / CONFIG_FILENAME).exists():
        raise FileExistsError(f"{CONFIG_FILENAME} already exists in {target_dir}")

    (target_dir / CONFIG_FILENAME).write_text(DEMO_CONFIG.format(owner=owner))
    (target_dir / "logs").mkdir(exist_ok=True)
    (target_dir / "storage").mkdir(exist_ok=True)

    return target_dir
