"""Exception types raised by the tracker core.

The lookup and state errors double as ``KeyError`` / ``ValueError`` so code
that only knows the builtin contract still catches them. Storage write
failures are not wrapped: the ``OSError`` from the filesystem propagates.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for tracker errors."""


class NotFoundError(TrackerError, KeyError):
    """The referenced issue id does not exist."""

    def __init__(self, issue_id: str) -> None:
        super().__init__(f"Issue not found: {issue_id}")
        self.issue_id = issue_id

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0])


class AlreadyClosedError(TrackerError, ValueError):
    """A mutation was attempted on an issue in a terminal state."""

    def __init__(self, issue_id: str, status: str) -> None:
        super().__init__(f"Issue {issue_id} is already closed ({status})")
        self.issue_id = issue_id
        self.status = status


class DecodeError(TrackerError, ValueError):
    """The backing artifact exists but is not a valid encoding of the store."""
