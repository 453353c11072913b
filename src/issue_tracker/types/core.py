"""Foundational TypedDicts for the persisted artifact and to_dict() returns.

Keys are camelCase: they are the on-disk format of ``issues.json`` and must
stay readable by every earlier writer of that file.
"""

from __future__ import annotations

from typing import NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class HistoryEntryDict(TypedDict):
    timestamp: ISOTimestamp
    agent: str
    action: str


class CommentDict(TypedDict):
    timestamp: ISOTimestamp
    agent: str
    text: str


class IssueDict(TypedDict):
    id: str
    title: str
    description: str
    classification: str
    createdAt: ISOTimestamp
    modifiedAt: ISOTimestamp
    status: str
    history: list[HistoryEntryDict]
    comments: list[CommentDict]


class StoreDict(TypedDict):
    """Shape of the whole backing artifact."""

    issues: list[IssueDict]
