"""MCP server for the agent issue tracker.

Primary interface for agents. Exposes the lifecycle engine as MCP tools over
stdio, or over streamable HTTP when mounted into the dashboard app.

Usage:
    issue-tracker mcp                          # stdio, ISSUES_FILE or ./issues.json
    issue-tracker --file /path/issues.json mcp
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from issue_tracker.engine import IssueTracker
from issue_tracker.errors import AlreadyClosedError, NotFoundError
from issue_tracker.models import VALID_CLASSIFICATIONS, VALID_STATUSES, Issue
from issue_tracker.types.api import EmptySelection, ErrorResponse, IssueListResponse
from issue_tracker.validation import (
    require_text,
    sanitize_agent,
    sanitize_title,
    validate_classification,
    validate_classification_list,
    validate_issue_id,
    validate_non_negative_int,
    validate_resolution,
    validate_status,
)

logger = logging.getLogger(__name__)

server = Server("agent-issue-tracker")
tracker: IssueTracker | None = None


def _get_tracker() -> IssueTracker:
    if tracker is None:
        msg = "Issue tracker not initialized"
        raise RuntimeError(msg)
    return tracker


def _text(content: object) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _error(message: str, code: str) -> list[TextContent]:
    return _text(ErrorResponse(error=message, code=code))


def _issue_or_empty(issue: Issue | None, reason: str) -> list[TextContent]:
    if issue is None:
        return _text(EmptySelection(status="empty", reason=reason))
    return _text(issue.to_dict())


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_AGENT_PROP = {"type": "string", "description": "Name or ID of the agent performing this action"}
_ISSUE_ID_PROP = {"type": "string", "description": "ID of the issue"}
_CLASSIFICATION_PROP = {"type": "string", "enum": list(VALID_CLASSIFICATIONS), "description": "Type of issue"}


@server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="add_issue",
            description="Create a new issue in the tracker with status 'created'",
            inputSchema={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Short title for the issue"},
                    "description": {"type": "string", "description": "Detailed description of the issue"},
                    "classification": _CLASSIFICATION_PROP,
                    "agent": _AGENT_PROP,
                },
                "required": ["title", "description", "classification", "agent"],
            },
        ),
        Tool(
            name="list_issues",
            description="List issues in creation order with optional status/classification filters and pagination",
            inputSchema={
                "type": "object",
                "properties": {
                    "status": {"type": "string", "enum": list(VALID_STATUSES), "description": "Filter by status"},
                    "classification": _CLASSIFICATION_PROP,
                    "skip": {"type": "integer", "minimum": 0, "default": 0, "description": "Skip the first N matches"},
                    "take": {"type": "integer", "minimum": 0, "description": "Return at most M matches"},
                },
            },
        ),
        Tool(
            name="get_issue",
            description="Get full details of an issue including history and comments",
            inputSchema={
                "type": "object",
                "properties": {"issue_id": _ISSUE_ID_PROP},
                "required": ["issue_id"],
            },
        ),
        Tool(
            name="peek_next_issue",
            description=(
                "Look at the next issue that would be worked on, checking classifications in the given priority "
                "order. Does not change any status."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "classifications": {
                        "type": "array",
                        "items": _CLASSIFICATION_PROP,
                        "description": "Classifications in priority order, e.g. ['bug', 'feature']",
                    },
                },
                "required": ["classifications"],
            },
        ),
        Tool(
            name="get_next_issue",
            description="Take the next available issue to work on and set it to in_progress",
            inputSchema={
                "type": "object",
                "properties": {
                    "agent": _AGENT_PROP,
                    "classification": _CLASSIFICATION_PROP,
                },
                "required": ["agent"],
            },
        ),
        Tool(
            name="return_issue",
            description="Return an issue to 'created' status with a comment explaining why",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_id": _ISSUE_ID_PROP,
                    "comment": {"type": "string", "description": "Reason for returning the issue"},
                    "agent": _AGENT_PROP,
                },
                "required": ["issue_id", "comment", "agent"],
            },
        ),
        Tool(
            name="complete_issue",
            description="Mark an issue as completed and ready for review, with a comment describing the work",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_id": _ISSUE_ID_PROP,
                    "comment": {"type": "string", "description": "Summary of the work done"},
                    "agent": _AGENT_PROP,
                },
                "required": ["issue_id", "comment", "agent"],
            },
        ),
        Tool(
            name="get_next_review",
            description="Take the oldest completed issue for review and set it to in_review",
            inputSchema={
                "type": "object",
                "properties": {"agent": _AGENT_PROP},
                "required": ["agent"],
            },
        ),
        Tool(
            name="close_issue",
            description="Close an issue as closed or rejected with a final comment",
            inputSchema={
                "type": "object",
                "properties": {
                    "issue_id": _ISSUE_ID_PROP,
                    "resolution": {"type": "string", "enum": ["closed", "rejected"], "description": "Final resolution"},
                    "comment": {"type": "string", "description": "Final comment explaining the resolution"},
                    "agent": _AGENT_PROP,
                },
                "required": ["issue_id", "resolution", "comment", "agent"],
            },
        ),
    ]


# ---------------------------------------------------------------------------
# Tool handlers
# ---------------------------------------------------------------------------


def _handle_add_issue(t: IssueTracker, arguments: dict[str, Any]) -> list[TextContent]:
    title, err = sanitize_title(arguments.get("title"))
    if err:
        return _error(err, "validation_error")
    description, err = require_text(arguments.get("description", ""), "description")
    if err:
        return _error(err, "validation_error")
    classification, err = validate_classification(arguments.get("classification"))
    if err:
        return _error(err, "validation_error")
    agent, err = sanitize_agent(arguments.get("agent"))
    if err:
        return _error(err, "validation_error")
    return _text(t.create_issue(title, description, classification, agent).to_dict())


def _handle_list_issues(t: IssueTracker, arguments: dict[str, Any]) -> list[TextContent]:
    status = arguments.get("status")
    if status is not None:
        status, err = validate_status(status)
        if err:
            return _error(err, "validation_error")
    classification = arguments.get("classification")
    if classification is not None:
        classification, err = validate_classification(classification)
        if err:
            return _error(err, "validation_error")
    skip, err = validate_non_negative_int(arguments.get("skip"), "skip")
    if err:
        return _error(err, "validation_error")
    take, err = validate_non_negative_int(arguments.get("take"), "take")
    if err:
        return _error(err, "validation_error")
    issues = t.list_issues(status=status, classification=classification, skip=skip or 0, take=take)
    return _text(
        IssueListResponse(
            issues=[i.to_dict() for i in issues],
            skip=skip or 0,
            take=take,
            count=len(issues),
        )
    )


def _handle_get_issue(t: IssueTracker, arguments: dict[str, Any]) -> list[TextContent]:
    issue_id, err = validate_issue_id(arguments.get("issue_id"))
    if err:
        return _error(err, "validation_error")
    return _text(t.get_issue(issue_id).to_dict())


def _handle_peek_next_issue(t: IssueTracker, arguments: dict[str, Any]) -> list[TextContent]:
    classifications, err = validate_classification_list(arguments.get("classifications"))
    if err:
        return _error(err, "validation_error")
    return _issue_or_empty(t.peek_next_issue(classifications), "No created issues in the requested classifications")


def _handle_get_next_issue(t: IssueTracker, arguments: dict[str, Any]) -> list[TextContent]:
    agent, err = sanitize_agent(arguments.get("agent"))
    if err:
        return _error(err, "validation_error")
    classification = arguments.get("classification")
    if classification is not None:
        classification, err = validate_classification(classification)
        if err:
            return _error(err, "validation_error")
    return _issue_or_empty(
        t.select_next_to_work(agent, classification=classification),
        "No issues available with status 'created'",
    )


def _handle_get_next_review(t: IssueTracker, arguments: dict[str, Any]) -> list[TextContent]:
    agent, err = sanitize_agent(arguments.get("agent"))
    if err:
        return _error(err, "validation_error")
    return _issue_or_empty(t.select_next_to_review(agent), "No issues available with status 'completed'")


def _handle_comment_transition(
    op: Callable[[str, str, str], Issue],
) -> Callable[[IssueTracker, dict[str, Any]], list[TextContent]]:
    """Handler for the (issue_id, comment, agent) operations: return and complete."""

    def handler(t: IssueTracker, arguments: dict[str, Any]) -> list[TextContent]:
        issue_id, err = validate_issue_id(arguments.get("issue_id"))
        if err:
            return _error(err, "validation_error")
        comment, err = require_text(arguments.get("comment"), "comment")
        if err:
            return _error(err, "validation_error")
        agent, err = sanitize_agent(arguments.get("agent"))
        if err:
            return _error(err, "validation_error")
        return _text(op(issue_id, comment, agent).to_dict())

    return handler


def _handle_close_issue(t: IssueTracker, arguments: dict[str, Any]) -> list[TextContent]:
    issue_id, err = validate_issue_id(arguments.get("issue_id"))
    if err:
        return _error(err, "validation_error")
    resolution, err = validate_resolution(arguments.get("resolution"))
    if err:
        return _error(err, "validation_error")
    comment, err = require_text(arguments.get("comment"), "comment")
    if err:
        return _error(err, "validation_error")
    agent, err = sanitize_agent(arguments.get("agent"))
    if err:
        return _error(err, "validation_error")
    return _text(t.close_issue(issue_id, resolution, comment, agent).to_dict())


def _handlers(t: IssueTracker) -> dict[str, Callable[[IssueTracker, dict[str, Any]], list[TextContent]]]:
    return {
        "add_issue": _handle_add_issue,
        "list_issues": _handle_list_issues,
        "get_issue": _handle_get_issue,
        "peek_next_issue": _handle_peek_next_issue,
        "get_next_issue": _handle_get_next_issue,
        "return_issue": _handle_comment_transition(t.return_issue),
        "complete_issue": _handle_comment_transition(t.complete_issue),
        "get_next_review": _handle_get_next_review,
        "close_issue": _handle_close_issue,
    }


# ---------------------------------------------------------------------------
# Tool dispatch
# ---------------------------------------------------------------------------


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    t = _get_tracker()
    t0 = time.monotonic()

    try:
        result = _dispatch(name, arguments or {}, t)
    except Exception:
        logger.error("tool_error", extra={"tool": name, "args_data": arguments}, exc_info=True)
        raise
    duration_ms = round((time.monotonic() - t0) * 1000, 1)
    logger.info("tool_call", extra={"tool": name, "args_data": arguments, "duration_ms": duration_ms})
    return result


def _dispatch(name: str, arguments: dict[str, Any], t: IssueTracker) -> list[TextContent]:
    handler = _handlers(t).get(name)
    if handler is None:
        return _error(f"Unknown tool: {name}", "unknown_tool")
    try:
        return handler(t, arguments)
    except NotFoundError as e:
        return _error(str(e), "not_found")
    except AlreadyClosedError as e:
        return _error(str(e), "already_closed")
    except ValueError as e:
        return _error(str(e), "validation_error")
    except OSError as e:
        logger.error("Failed to persist %s", name, extra={"tool": name, "error": str(e)})
        return _error(f"Failed to persist change: {e}", "io_error")


# ---------------------------------------------------------------------------
# HTTP transport factory (mounted by the dashboard)
# ---------------------------------------------------------------------------


def create_mcp_app() -> Any:
    """Create an ASGI app + lifespan hook for MCP streamable-HTTP.

    Returns ``(asgi_app, lifespan_context_manager)``. The lifespan must be
    entered during the parent app's lifespan so the session manager's task
    group is running before the first request arrives. Requests act on the
    module-level ``tracker``, which the dashboard sets at startup.
    """
    from mcp.server.streamable_http_manager import StreamableHTTPSessionManager

    session_manager = StreamableHTTPSessionManager(
        app=server,
        json_response=False,
        stateless=True,
    )

    async def _handle_mcp(scope: Any, receive: Any, send: Any) -> None:
        from starlette.responses import JSONResponse

        try:
            await session_manager.handle_request(scope, receive, send)
        except RuntimeError:
            # Session manager not started (lifespan not entered)
            resp = JSONResponse({"error": "MCP session manager not initialized"}, status_code=503)
            await resp(scope, receive, send)

    return _handle_mcp, session_manager.run


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def run_stdio(active: IssueTracker) -> None:
    """Serve *active* over stdio until the client disconnects."""
    global tracker

    tracker = active
    logger.info("mcp_server_start", extra={"tool": "server", "args_data": {"file": str(active.storage.path)}})
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
