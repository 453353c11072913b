"""Issue lifecycle engine: state machine, selection policies, and persistence.

Single source of truth for every issue operation. The MCP server, the
dashboard, and the CLI all call into one :class:`IssueTracker` instance.

Every mutation runs the whole read-validate-compute-persist-publish sequence
under one lock. New state is built on a copy of the issue list and only
published after :meth:`IssueStorage.save` returns, so a failed save leaves
both memory and disk as they were. Readers take the published list reference
without locking; it is never modified after publication.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from issue_tracker.config import DEFAULT_POLICY, SelectionPolicy, parse_policy
from issue_tracker.errors import AlreadyClosedError, NotFoundError
from issue_tracker.models import (
    VALID_CLASSIFICATIONS,
    VALID_RESOLUTIONS,
    VALID_STATUSES,
    Comment,
    HistoryEntry,
    Issue,
    IssueStore,
)
from issue_tracker.storage import IssueStorage

if TYPE_CHECKING:
    from issue_tracker.config import TrackerConfig

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    """Current UTC time, millisecond precision, ``Z`` suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _validate_classification(classification: str) -> None:
    if classification not in VALID_CLASSIFICATIONS:
        msg = f"Invalid classification {classification!r}. Must be one of: {', '.join(VALID_CLASSIFICATIONS)}"
        raise ValueError(msg)


def _validate_agent(agent: str) -> None:
    if not agent or not agent.strip():
        msg = "Agent cannot be empty"
        raise ValueError(msg)


def _log_transition(issue: Issue, from_status: str | None, agent: str) -> None:
    """One ``issue_transition`` record per committed status change; creation has no from_status."""
    logger.info(
        "issue_transition",
        extra={
            "issue_id": issue.id,
            "agent": agent,
            "classification": issue.classification,
            "from_status": from_status,
            "to_status": issue.status,
        },
    )


class IssueTracker:
    """Owns the in-memory issue collection and its backing storage."""

    def __init__(
        self,
        storage: IssueStorage,
        *,
        selection_policy: SelectionPolicy | str = DEFAULT_POLICY,
        store: IssueStore | None = None,
    ) -> None:
        self.storage = storage
        self.selection_policy: SelectionPolicy = parse_policy(selection_policy)
        self._lock = threading.Lock()
        self._issues: list[Issue] = list(store.issues) if store is not None else []

    @classmethod
    def open(cls, storage: IssueStorage, *, selection_policy: SelectionPolicy | str = DEFAULT_POLICY) -> IssueTracker:
        """Load the store from *storage*. Raises DecodeError on a corrupt artifact."""
        return cls(storage, selection_policy=selection_policy, store=storage.load())

    @classmethod
    def from_config(cls, config: TrackerConfig) -> IssueTracker:
        return cls.open(IssueStorage(config.issues_file), selection_policy=config.selection_policy)

    # -- Internals -----------------------------------------------------------

    def _generate_unique_id(self) -> str:
        existing = {i.id for i in self._issues}
        while True:
            candidate = str(uuid.uuid4())
            if candidate not in existing:
                return candidate

    def _index_of(self, issue_id: str) -> int:
        for index, issue in enumerate(self._issues):
            if issue.id == issue_id:
                return index
        raise NotFoundError(issue_id)

    @staticmethod
    def _stamp(issue: Issue) -> str:
        """Mutation timestamp, never earlier than the issue's last one."""
        return max(_now_iso(), issue.modified_at)

    @staticmethod
    def _transition(
        issue: Issue,
        *,
        status: str,
        agent: str,
        action: str,
        comment: str | None = None,
    ) -> Issue:
        timestamp = IssueTracker._stamp(issue)
        comments = issue.comments
        if comment is not None:
            comments = (*comments, Comment(timestamp=timestamp, agent=agent, text=comment))
        return dataclasses.replace(
            issue,
            status=status,
            modified_at=timestamp,
            history=(*issue.history, HistoryEntry(timestamp=timestamp, agent=agent, action=action)),
            comments=comments,
        )

    def _commit(self, issues: list[Issue]) -> None:
        """Persist *issues*, then publish them. Caller must hold the lock."""
        self.storage.save(IssueStore(issues))
        self._issues = issues

    def _replace_at(self, index: int, updated: Issue) -> Issue:
        issues = list(self._issues)
        issues[index] = updated
        self._commit(issues)
        return updated

    def _find_candidate(
        self,
        issues: Sequence[Issue],
        status: str,
        *,
        classification: str | None = None,
        newest_first: bool = False,
    ) -> int | None:
        indices: Iterable[int] = range(len(issues))
        if newest_first:
            indices = reversed(range(len(issues)))
        for index in indices:
            issue = issues[index]
            if issue.status != status:
                continue
            if classification is not None and issue.classification != classification:
                continue
            return index
        return None

    def _mutate_open_issue(
        self,
        issue_id: str,
        *,
        status: str,
        agent: str,
        action: str,
        comment: str,
    ) -> Issue:
        _validate_agent(agent)
        with self._lock:
            index = self._index_of(issue_id)
            current = self._issues[index]
            if current.is_terminal:
                raise AlreadyClosedError(issue_id, current.status)
            updated = self._replace_at(
                index,
                self._transition(current, status=status, agent=agent, action=action, comment=comment),
            )
        _log_transition(updated, current.status, agent)
        return updated

    # -- Read-only queries ---------------------------------------------------

    def get_all_issues(self) -> list[Issue]:
        return list(self._issues)

    def count(self) -> int:
        return len(self._issues)

    def get_issue(self, issue_id: str) -> Issue:
        for issue in self._issues:
            if issue.id == issue_id:
                return issue
        raise NotFoundError(issue_id)

    def list_issues(
        self,
        *,
        status: str | None = None,
        classification: str | None = None,
        skip: int = 0,
        take: int | None = None,
    ) -> list[Issue]:
        """Filter in insertion order, then paginate, on one snapshot."""
        if status is not None and status not in VALID_STATUSES:
            msg = f"Invalid status {status!r}. Must be one of: {', '.join(VALID_STATUSES)}"
            raise ValueError(msg)
        if classification is not None:
            _validate_classification(classification)
        if skip < 0:
            msg = f"skip must be >= 0, got {skip}"
            raise ValueError(msg)
        if take is not None and take < 0:
            msg = f"take must be >= 0, got {take}"
            raise ValueError(msg)

        snapshot = self._issues
        matches = [
            i
            for i in snapshot
            if (status is None or i.status == status) and (classification is None or i.classification == classification)
        ]
        end = None if take is None else skip + take
        return matches[skip:end]

    def peek_next_issue(self, classifications: Sequence[str]) -> Issue | None:
        """Oldest created issue of the first listed classification that has one."""
        for classification in classifications:
            _validate_classification(classification)
        snapshot = self._issues
        for classification in classifications:
            index = self._find_candidate(snapshot, "created", classification=classification)
            if index is not None:
                return snapshot[index]
        return None

    # -- Mutations -----------------------------------------------------------

    def create_issue(self, title: str, description: str, classification: str, agent: str) -> Issue:
        if not title or not title.strip():
            msg = "Title cannot be empty"
            raise ValueError(msg)
        _validate_classification(classification)
        _validate_agent(agent)

        with self._lock:
            timestamp = _now_iso()
            issue = Issue(
                id=self._generate_unique_id(),
                title=title,
                description=description,
                classification=classification,
                status="created",
                created_at=timestamp,
                modified_at=timestamp,
                history=(
                    HistoryEntry(
                        timestamp=timestamp,
                        agent=agent,
                        action=f'Issue created with classification "{classification}"',
                    ),
                ),
            )
            self._commit([*self._issues, issue])
        _log_transition(issue, None, agent)
        return issue

    def select_next_to_work(self, agent: str, classification: str | None = None) -> Issue | None:
        """Move the next created issue to in_progress, or return None."""
        _validate_agent(agent)
        if classification is not None:
            _validate_classification(classification)
        with self._lock:
            index = self._find_candidate(
                self._issues,
                "created",
                classification=classification,
                newest_first=self.selection_policy == "lifo",
            )
            if index is None:
                logger.debug("select_next_to_work: nothing available", extra={"agent": agent, "to_status": "in_progress"})
                return None
            updated = self._replace_at(
                index,
                self._transition(
                    self._issues[index],
                    status="in_progress",
                    agent=agent,
                    action="Issue picked up and set to in_progress",
                ),
            )
        _log_transition(updated, "created", agent)
        return updated

    def select_next_to_review(self, agent: str) -> Issue | None:
        """Move the oldest completed issue to in_review, or return None."""
        _validate_agent(agent)
        with self._lock:
            index = self._find_candidate(self._issues, "completed")
            if index is None:
                logger.debug("select_next_to_review: nothing to review", extra={"agent": agent, "to_status": "in_review"})
                return None
            updated = self._replace_at(
                index,
                self._transition(
                    self._issues[index],
                    status="in_review",
                    agent=agent,
                    action="Issue picked up for review",
                ),
            )
        _log_transition(updated, "completed", agent)
        return updated

    def return_issue(self, issue_id: str, comment: str, agent: str) -> Issue:
        return self._mutate_open_issue(
            issue_id,
            status="created",
            agent=agent,
            action="Issue returned to created status",
            comment=comment,
        )

    def complete_issue(self, issue_id: str, comment: str, agent: str) -> Issue:
        return self._mutate_open_issue(
            issue_id,
            status="completed",
            agent=agent,
            action="Issue marked as completed",
            comment=comment,
        )

    def close_issue(self, issue_id: str, resolution: str, comment: str, agent: str) -> Issue:
        if resolution not in VALID_RESOLUTIONS:
            msg = f"Invalid resolution {resolution!r}. Must be one of: {', '.join(sorted(VALID_RESOLUTIONS))}"
            raise ValueError(msg)
        return self._mutate_open_issue(
            issue_id,
            status=resolution,
            agent=agent,
            action=f'Issue closed as "{resolution}"',
            comment=comment,
        )
