"""trainbook -- spreadsheet-backed store for interactive training projects."""

__version__ = "0.3.0"
