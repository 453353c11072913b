"""Issue records and the issue store aggregate.

Records are frozen: every state transition builds a new ``Issue`` with
``dataclasses.replace`` and the engine swaps it into a new list. A snapshot
handed to a reader therefore never changes underneath it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from issue_tracker.errors import DecodeError
from issue_tracker.types.core import CommentDict, HistoryEntryDict, ISOTimestamp, IssueDict, StoreDict

VALID_CLASSIFICATIONS: tuple[str, ...] = ("bug", "improvement", "feature")
VALID_STATUSES: tuple[str, ...] = ("created", "in_progress", "completed", "in_review", "closed", "rejected")
VALID_RESOLUTIONS: frozenset[str] = frozenset({"closed", "rejected"})
TERMINAL_STATUSES: frozenset[str] = frozenset({"closed", "rejected"})

# Agent recorded on history entries synthesized for legacy records.
LEGACY_AGENT = "unknown"


@dataclass(frozen=True)
class HistoryEntry:
    timestamp: str
    agent: str
    action: str

    def to_dict(self) -> HistoryEntryDict:
        return {"timestamp": ISOTimestamp(self.timestamp), "agent": self.agent, "action": self.action}


@dataclass(frozen=True)
class Comment:
    timestamp: str
    agent: str
    text: str

    def to_dict(self) -> CommentDict:
        return {"timestamp": ISOTimestamp(self.timestamp), "agent": self.agent, "text": self.text}


@dataclass(frozen=True)
class Issue:
    id: str
    title: str
    classification: str
    status: str = "created"
    description: str = ""
    created_at: str = ""
    modified_at: str = ""
    history: tuple[HistoryEntry, ...] = ()
    comments: tuple[Comment, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def latest_history(self) -> HistoryEntry | None:
        return self.history[-1] if self.history else None

    def to_dict(self) -> IssueDict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "classification": self.classification,
            "createdAt": ISOTimestamp(self.created_at),
            "modifiedAt": ISOTimestamp(self.modified_at),
            "status": self.status,
            "history": [h.to_dict() for h in self.history],
            "comments": [c.to_dict() for c in self.comments],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Issue:
        """Decode one issue record, filling fields older writers omitted.

        Raises DecodeError when a required field is missing or malformed.
        """
        if not isinstance(data, dict):
            msg = f"Issue record must be an object, got {type(data).__name__}"
            raise DecodeError(msg)
        issue_id = _require_str(data, "id")
        title = _require_str(data, "title", issue_id)
        classification = _require_str(data, "classification", issue_id)
        if classification not in VALID_CLASSIFICATIONS:
            msg = f"Issue {issue_id}: unknown classification {classification!r}"
            raise DecodeError(msg)
        status = _require_str(data, "status", issue_id)
        if status not in VALID_STATUSES:
            msg = f"Issue {issue_id}: unknown status {status!r}"
            raise DecodeError(msg)
        created_at = _require_str(data, "createdAt", issue_id)
        modified_at = _optional_str(data, "modifiedAt", issue_id) or created_at
        description = _optional_str(data, "description", issue_id) or ""

        history = tuple(
            HistoryEntry(
                timestamp=_require_str(entry, "timestamp", issue_id),
                agent=_require_str(entry, "agent", issue_id),
                action=_require_str(entry, "action", issue_id),
            )
            for entry in _optional_list(data, "history", issue_id)
        )
        if not history:
            history = (
                HistoryEntry(
                    timestamp=created_at,
                    agent=LEGACY_AGENT,
                    action=f'Issue created with classification "{classification}"',
                ),
            )
        comments = tuple(
            Comment(
                timestamp=_require_str(entry, "timestamp", issue_id),
                agent=_require_str(entry, "agent", issue_id),
                text=_require_str(entry, "text", issue_id),
            )
            for entry in _optional_list(data, "comments", issue_id)
        )
        return cls(
            id=issue_id,
            title=title,
            classification=classification,
            status=status,
            description=description,
            created_at=created_at,
            modified_at=modified_at,
            history=history,
            comments=comments,
        )


@dataclass
class IssueStore:
    """Ordered issue collection. List order is creation order."""

    issues: list[Issue] = field(default_factory=list)

    def to_dict(self) -> StoreDict:
        return {"issues": [i.to_dict() for i in self.issues]}

    @classmethod
    def from_dict(cls, data: Any) -> IssueStore:
        if not isinstance(data, dict):
            msg = "Store must be a JSON object with an 'issues' list"
            raise DecodeError(msg)
        raw_issues = data.get("issues", [])
        if not isinstance(raw_issues, list):
            msg = "'issues' must be a list"
            raise DecodeError(msg)
        issues = [Issue.from_dict(raw) for raw in raw_issues]
        seen: set[str] = set()
        for issue in issues:
            if issue.id in seen:
                msg = f"Duplicate issue id: {issue.id}"
                raise DecodeError(msg)
            seen.add(issue.id)
        return cls(issues=issues)


# ---------------------------------------------------------------------------
# Decoding helpers
# ---------------------------------------------------------------------------


def _require_str(data: Any, key: str, issue_id: str = "") -> str:
    where = f"Issue {issue_id}: " if issue_id else ""
    if not isinstance(data, dict) or key not in data:
        msg = f"{where}missing required field {key!r}"
        raise DecodeError(msg)
    value = data[key]
    if not isinstance(value, str):
        msg = f"{where}field {key!r} must be a string"
        raise DecodeError(msg)
    return value


def _optional_str(data: dict[str, Any], key: str, issue_id: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        msg = f"Issue {issue_id}: field {key!r} must be a string"
        raise DecodeError(msg)
    return value


def _optional_list(data: dict[str, Any], key: str, issue_id: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"Issue {issue_id}: field {key!r} must be a list"
        raise DecodeError(msg)
    return value
