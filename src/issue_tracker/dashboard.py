"""Web dashboard for the issue tracker: read-only HTML view plus JSON API.

A module-level ``_tracker`` is set at startup and injected into handlers via
``Depends(_get_tracker)``. The MCP streamable-HTTP endpoint is mounted at
``/mcp`` and shares the same tracker.

Usage:
    issue-tracker serve                 # http://127.0.0.1:3000
    PORT=8080 issue-tracker serve
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from jinja2 import Environment, FileSystemLoader
from starlette.routing import Mount

from issue_tracker.config import DEFAULT_HOST, DEFAULT_PORT
from issue_tracker.engine import IssueTracker
from issue_tracker.errors import NotFoundError
from issue_tracker.models import VALID_STATUSES
from issue_tracker.types.api import HealthResponse
from issue_tracker.validation import validate_classification, validate_status

TEMPLATES_DIR = Path(__file__).parent / "templates"
REFRESH_SECONDS = 30

STATUS_COLORS = {
    "created": "#6c757d",
    "in_progress": "#0d6efd",
    "completed": "#6f42c1",
    "in_review": "#fd7e14",
    "closed": "#198754",
    "rejected": "#dc3545",
}
CLASSIFICATION_COLORS = {
    "bug": "#dc3545",
    "improvement": "#fd7e14",
    "feature": "#0dcaf0",
}

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state, set by main() or test fixtures
# ---------------------------------------------------------------------------

_tracker: IssueTracker | None = None

_env = Environment(loader=FileSystemLoader(str(TEMPLATES_DIR)), autoescape=True)


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    logger.warning("API error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"error": {"message": message, "code": code, "details": details or {}}},
        status_code=status_code,
    )


def _safe_int(value: str | None, name: str) -> int | None | JSONResponse:
    """Parse an optional non-negative query-param, returning a 400 error response on failure."""
    if value is None or value == "":
        return None
    try:
        result = int(value)
    except ValueError:
        return _error_response(
            f'Invalid value for {name}: "{value}". Must be an integer.',
            "validation_error",
            400,
        )
    if result < 0:
        return _error_response(
            f"Invalid value for {name}: {result}. Must be >= 0.",
            "validation_error",
            400,
        )
    return result


def _get_tracker() -> IssueTracker:
    if _tracker is None:
        raise HTTPException(status_code=500, detail="Issue tracker not initialized")
    return _tracker


def render_dashboard(tracker: IssueTracker, status: str | None = None) -> str:
    """Render the HTML overview. Unknown statuses (and ``all``) show every issue."""
    current = status if status in VALID_STATUSES else None
    issues = tracker.list_issues(status=current)
    template = _env.get_template("dashboard.html.j2")
    return template.render(
        issues=issues,
        total=tracker.count(),
        current_status=current,
        statuses=VALID_STATUSES,
        status_colors=STATUS_COLORS,
        classification_colors=CLASSIFICATION_COLORS,
        refresh_seconds=REFRESH_SECONDS,
    )


def create_app() -> Any:
    """Create the FastAPI application with the dashboard, JSON API and MCP endpoint."""
    from issue_tracker.mcp_server import create_mcp_app

    mcp_handler, mcp_lifespan_factory = create_mcp_app()

    @contextlib.asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with mcp_lifespan_factory():
            yield

    app = FastAPI(title="Issue Tracker", docs_url=None, redoc_url=None, lifespan=_lifespan)

    @app.get("/", response_class=HTMLResponse)
    async def index(status: str | None = None, tracker: IssueTracker = Depends(_get_tracker)) -> HTMLResponse:
        return HTMLResponse(render_dashboard(tracker, status))

    @app.get("/health")
    async def health(tracker: IssueTracker = Depends(_get_tracker)) -> JSONResponse:
        return JSONResponse(HealthResponse(status="ok", issueCount=tracker.count()))

    @app.get("/api/issues")
    async def api_issues(request: Request, tracker: IssueTracker = Depends(_get_tracker)) -> JSONResponse:
        params = request.query_params
        status = params.get("status") or None
        if status is not None:
            status, err = validate_status(status)
            if err:
                return _error_response(err, "validation_error", 400, {"param": "status"})
        classification = params.get("classification") or None
        if classification is not None:
            classification, err = validate_classification(classification)
            if err:
                return _error_response(err, "validation_error", 400, {"param": "classification"})
        skip = _safe_int(params.get("skip"), "skip")
        if isinstance(skip, JSONResponse):
            return skip
        take = _safe_int(params.get("take"), "take")
        if isinstance(take, JSONResponse):
            return take
        issues = tracker.list_issues(status=status, classification=classification, skip=skip or 0, take=take)
        return JSONResponse([i.to_dict() for i in issues])

    @app.get("/api/issue/{issue_id}")
    async def api_issue(issue_id: str, tracker: IssueTracker = Depends(_get_tracker)) -> JSONResponse:
        try:
            issue = tracker.get_issue(issue_id)
        except NotFoundError:
            return _error_response(f"Issue not found: {issue_id}", "not_found", 404, {"id": issue_id})
        return JSONResponse(issue.to_dict())

    app.routes.append(Mount("/mcp", app=mcp_handler))

    return app


def main(tracker: IssueTracker, *, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Serve the dashboard and the HTTP MCP endpoint until interrupted."""
    import uvicorn

    from issue_tracker import mcp_server

    global _tracker

    _tracker = tracker
    mcp_server.tracker = tracker

    app = create_app()
    logger.info("Dashboard starting on %s:%d (%d issues)", host, port, tracker.count())
    print(f"Issue tracker: http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="warning")
