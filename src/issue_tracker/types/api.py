"""TypedDicts for MCP tool handler and dashboard route API responses."""

from __future__ import annotations

from typing import TypedDict

from issue_tracker.types.core import IssueDict


class ErrorResponse(TypedDict):
    """Standard error envelope returned by MCP error paths."""

    error: str
    code: str


class EmptySelection(TypedDict):
    """Returned by selection tools when no issue is eligible."""

    status: str
    reason: str


class IssueListResponse(TypedDict):
    issues: list[IssueDict]
    skip: int
    take: int | None
    count: int


class HealthResponse(TypedDict):
    status: str
    issueCount: int
