"""Who is calling, and who owns and edits the workbook."""

from __future__ import annotations

import os
from typing import Any, Protocol

from pydantic import BaseModel, Field


class IdentityService(Protocol):
    def current_identity(self) -> str: ...


class StaticIdentity:
    """Always reports the same identity.  Used by tests and scripted runs."""

    def __init__(self, identity: str) -> None:
        self.identity = identity

    def current_identity(self) -> str:
        return self.identity


class EnvIdentity:
    """Reads the identity from an environment variable (``""`` when unset)."""

    def __init__(self, variable: str = "TRAINBOOK_USER") -> None:
        self.variable = variable

    def current_identity(self) -> str:
        return os.environ.get(self.variable, "").strip()


class DocumentSharing(BaseModel):
    """Owner and editors of the workbook itself."""

    owner: str | None = None
    editors: list[str] = Field(default_factory=list)

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> DocumentSharing:
        return cls(
            owner=config.get("document_owner") or None,
            editors=list(config.get("document_editors") or []),
        )

    def is_owner(self, identity: str) -> bool:
        return bool(self.owner) and self.owner.lower() == identity.strip().lower()

    def is_editor(self, identity: str) -> bool:
        wanted = identity.strip().lower()
        return any(e.lower() == wanted for e in self.editors)
