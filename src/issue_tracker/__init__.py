"""Agent issue tracker: a small, file-backed issue lifecycle service for AI agents."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("agent-issue-tracker")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from issue_tracker.engine import IssueTracker
from issue_tracker.errors import AlreadyClosedError, DecodeError, NotFoundError, TrackerError
from issue_tracker.models import Issue

__all__ = [
    "AlreadyClosedError",
    "DecodeError",
    "Issue",
    "IssueTracker",
    "NotFoundError",
    "TrackerError",
    "__version__",
]
