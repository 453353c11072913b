"""Tests for the issue record codec and the atomic file store."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from issue_tracker.errors import DecodeError
from issue_tracker.models import (
    LEGACY_AGENT,
    TERMINAL_STATUSES,
    VALID_RESOLUTIONS,
    VALID_STATUSES,
    Comment,
    HistoryEntry,
    Issue,
    IssueStore,
)
from issue_tracker.storage import IssueStorage, write_atomic
from tests.conftest import write_store

_FULL_RECORD = {
    "id": "abc",
    "title": "Crash",
    "description": "boom",
    "classification": "bug",
    "createdAt": "2024-05-01T10:00:00.000Z",
    "modifiedAt": "2024-05-02T10:00:00.000Z",
    "status": "completed",
    "history": [
        {"timestamp": "2024-05-01T10:00:00.000Z", "agent": "alice", "action": 'Issue created with classification "bug"'},
        {"timestamp": "2024-05-02T10:00:00.000Z", "agent": "bob", "action": "Issue marked as completed"},
    ],
    "comments": [{"timestamp": "2024-05-02T10:00:00.000Z", "agent": "bob", "text": "fixed"}],
}


class TestIssueCodec:
    def test_decode_full_record(self) -> None:
        issue = Issue.from_dict(_FULL_RECORD)
        assert issue.id == "abc"
        assert issue.created_at == "2024-05-01T10:00:00.000Z"
        assert issue.modified_at == "2024-05-02T10:00:00.000Z"
        assert issue.history[1] == HistoryEntry("2024-05-02T10:00:00.000Z", "bob", "Issue marked as completed")
        assert issue.comments == (Comment("2024-05-02T10:00:00.000Z", "bob", "fixed"),)

    def test_encode_uses_wire_keys(self) -> None:
        data = Issue.from_dict(_FULL_RECORD).to_dict()
        assert data == _FULL_RECORD

    def test_legacy_record_defaults(self) -> None:
        legacy = {
            "id": "old",
            "title": "Legacy",
            "classification": "feature",
            "createdAt": "2023-01-01T00:00:00.000Z",
            "status": "created",
        }
        issue = Issue.from_dict(legacy)
        assert issue.description == ""
        assert issue.comments == ()
        assert issue.modified_at == issue.created_at
        assert len(issue.history) == 1
        assert issue.history[0].agent == LEGACY_AGENT
        assert issue.history[0].timestamp == issue.created_at

    def test_unknown_keys_ignored(self) -> None:
        issue = Issue.from_dict({**_FULL_RECORD, "priority": 3})
        assert issue.id == "abc"

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("classification", "epic"),
            ("status", "open"),
            ("title", 42),
        ],
    )
    def test_invalid_fields(self, key: str, value: object) -> None:
        with pytest.raises(DecodeError):
            Issue.from_dict({**_FULL_RECORD, key: value})

    def test_missing_id(self) -> None:
        record = {k: v for k, v in _FULL_RECORD.items() if k != "id"}
        with pytest.raises(DecodeError, match="id"):
            Issue.from_dict(record)

    def test_malformed_history_entry(self) -> None:
        with pytest.raises(DecodeError, match="agent"):
            Issue.from_dict({**_FULL_RECORD, "history": [{"timestamp": "t", "action": "x"}]})

    def test_duplicate_ids_rejected(self) -> None:
        with pytest.raises(DecodeError, match="Duplicate"):
            IssueStore.from_dict({"issues": [_FULL_RECORD, _FULL_RECORD]})

    def test_store_must_be_object(self) -> None:
        with pytest.raises(DecodeError):
            IssueStore.from_dict([])
        with pytest.raises(DecodeError):
            IssueStore.from_dict({"issues": {}})

    def test_resolutions_are_terminal_statuses(self) -> None:
        assert VALID_RESOLUTIONS == TERMINAL_STATUSES
        assert VALID_RESOLUTIONS <= set(VALID_STATUSES)

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
    def test_terminal_record_decodes_as_terminal(self, status: str) -> None:
        assert Issue.from_dict({**_FULL_RECORD, "status": status}).is_terminal


class TestIssueStorage:
    def test_missing_file_is_empty_store(self, storage: IssueStorage) -> None:
        assert storage.load().issues == []

    def test_round_trip_preserves_order(self, storage: IssueStorage) -> None:
        issues = [Issue.from_dict({**_FULL_RECORD, "id": f"id-{n}"}) for n in range(3)]
        storage.save(IssueStore(issues))
        assert storage.load().issues == issues

    def test_save_format(self, storage: IssueStorage, issues_file: Path) -> None:
        storage.save(IssueStore([Issue.from_dict(_FULL_RECORD)]))
        data = json.loads(issues_file.read_text())
        assert list(data) == ["issues"]
        assert data["issues"][0]["modifiedAt"] == "2024-05-02T10:00:00.000Z"

    def test_save_creates_parent_dirs(self, tmp_path: Path) -> None:
        storage = IssueStorage(tmp_path / "nested" / "dir" / "issues.json")
        storage.save(IssueStore())
        assert storage.path.exists()

    def test_no_tmp_left_behind(self, storage: IssueStorage) -> None:
        storage.save(IssueStore([Issue.from_dict(_FULL_RECORD)]))
        assert not storage.tmp_path.exists()

    def test_corrupt_json(self, storage: IssueStorage, issues_file: Path) -> None:
        issues_file.write_text("{not json")
        with pytest.raises(DecodeError, match="Corrupt"):
            storage.load()

    def test_invalid_utf8(self, storage: IssueStorage, issues_file: Path) -> None:
        issues_file.write_bytes(b'{"issues": [{"id": "\xff\xfe"}]}')
        with pytest.raises(DecodeError, match="Corrupt"):
            storage.load()

    def test_invalid_schema(self, storage: IssueStorage, issues_file: Path) -> None:
        write_store(issues_file, [{"id": "x"}])
        with pytest.raises(DecodeError, match="Invalid issue file"):
            storage.load()

    def test_loads_legacy_file(self, storage: IssueStorage, issues_file: Path) -> None:
        write_store(
            issues_file,
            [{"id": "1", "title": "Old", "classification": "bug", "createdAt": "2023-01-01T00:00:00.000Z", "status": "in_progress"}],
        )
        (issue,) = storage.load().issues
        assert issue.status == "in_progress"
        assert issue.history[0].agent == LEGACY_AGENT

    def test_failed_replace_keeps_previous_file(self, storage: IssueStorage, issues_file: Path) -> None:
        storage.save(IssueStore([Issue.from_dict(_FULL_RECORD)]))
        before = issues_file.read_text()
        with patch("issue_tracker.storage.os.replace", side_effect=OSError("no space")):
            with pytest.raises(OSError, match="no space"):
                storage.save(IssueStore())
        assert issues_file.read_text() == before
        assert not storage.tmp_path.exists()


class TestWriteAtomic:
    def test_writes_content(self, tmp_path: Path) -> None:
        target = tmp_path / "out.json"
        write_atomic(target, '{"a": 1}')
        assert target.read_text() == '{"a": 1}'

    def test_overwrites_existing(self, tmp_path: Path) -> None:
        target = tmp_path / "out.json"
        target.write_text("old")
        write_atomic(target, "new")
        assert target.read_text() == "new"
