# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from models.py, engine.py, or storage.py.
"""Typed wire-format contracts for the tracker core and API layers."""

from __future__ import annotations

from issue_tracker.types.core import (
    CommentDict,
    HistoryEntryDict,
    ISOTimestamp,
    IssueDict,
    StoreDict,
)

__all__ = [
    "CommentDict",
    "HistoryEntryDict",
    "ISOTimestamp",
    "IssueDict",
    "StoreDict",
]
