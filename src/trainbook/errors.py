"""Error types raised by the trainbook store."""

from __future__ import annotations


class TrainbookError(Exception):
    """Base class for all trainbook errors."""


class GridError(TrainbookError):
    """An underlying workbook operation failed.

    Attributes:
        tab: The tab the operation targeted, if any.
    """

    def __init__(self, message: str, tab: str | None = None) -> None:
        self.tab = tab
        full = message if tab is None else f"{message} (tab {tab!r})"
        super().__init__(full)


class TemplateCloneError(TrainbookError):
    """A project tab could not be created from the master tab.

    Attributes:
        master: Name of the master tab.
        target: Name of the tab that was to be created.
    """

    def __init__(self, message: str, master: str, target: str | None = None) -> None:
        self.master = master
        self.target = target
        super().__init__(message)


class StorageError(TrainbookError):
    """The file-storage collaborator failed."""


class RequestError(TrainbookError):
    """A service request was malformed (missing or empty parameter)."""
