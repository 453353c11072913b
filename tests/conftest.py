"""Shared pytest fixtures for issue tracker tests."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from issue_tracker.engine import IssueTracker
from issue_tracker.storage import IssueStorage


@pytest.fixture
def issues_file(tmp_path: Path) -> Path:
    return tmp_path / "issues.json"


@pytest.fixture
def storage(issues_file: Path) -> IssueStorage:
    return IssueStorage(issues_file)


@pytest.fixture
def tracker(storage: IssueStorage) -> IssueTracker:
    """Fresh, empty IssueTracker for each test."""
    return IssueTracker.open(storage)


@dataclass
class PopulatedTracker:
    tracker: IssueTracker
    ids: dict[str, str]


@pytest.fixture
def populated_tracker(tracker: IssueTracker) -> PopulatedTracker:
    """IssueTracker pre-populated with a representative issue set.

    Creates, in order:
    - working: improvement taken to in_progress by carol
    - done: bug completed by carol and waiting for review
    - closed: feature closed as rejected
    - bug1, feature1, bug2: still created
    """
    working = tracker.create_issue("Faster search", "", "improvement", "bob")
    tracker.select_next_to_work("carol")
    done = tracker.create_issue("Broken link", "", "bug", "bob")
    tracker.select_next_to_work("carol")
    tracker.complete_issue(done.id, "fixed the href", "carol")
    closed = tracker.create_issue("Blink tag", "", "feature", "dave")
    tracker.close_issue(closed.id, "rejected", "not doing this", "erin")
    bug1 = tracker.create_issue("Crash on start", "Segfault when launching", "bug", "alice")
    feature1 = tracker.create_issue("Dark mode", "Add a dark theme", "feature", "alice")
    bug2 = tracker.create_issue("Typo in footer", "", "bug", "bob")
    return PopulatedTracker(
        tracker=tracker,
        ids={
            "bug1": bug1.id,
            "feature1": feature1.id,
            "bug2": bug2.id,
            "working": working.id,
            "done": done.id,
            "closed": closed.id,
        },
    )


def write_store(path: Path, issues: list[dict[str, Any]]) -> None:
    """Write a raw store document, bypassing the tracker."""
    path.write_text(json.dumps({"issues": issues}, indent=2))


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()
