"""Process configuration read from environment variables.

| Variable                  | Default            |
|---------------------------|--------------------|
| ``ISSUES_FILE``           | ``./issues.json``  |
| ``ISSUES_SELECTION_POLICY`` | ``fifo``         |
| ``ISSUES_HOST``           | ``127.0.0.1``      |
| ``PORT``                  | ``3000``           |
| ``ISSUES_LOG_DIR``        | artifact directory |
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from issue_tracker.storage import DEFAULT_FILENAME

SelectionPolicy = Literal["fifo", "lifo"]

VALID_POLICIES: frozenset[str] = frozenset({"fifo", "lifo"})
DEFAULT_POLICY: SelectionPolicy = "fifo"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000


@dataclass(frozen=True)
class TrackerConfig:
    issues_file: Path = field(default_factory=lambda: Path.cwd() / DEFAULT_FILENAME)
    selection_policy: SelectionPolicy = DEFAULT_POLICY
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_dir: Path | None = None

    @property
    def resolved_log_dir(self) -> Path:
        return self.log_dir if self.log_dir is not None else self.issues_file.parent


def parse_policy(value: str) -> SelectionPolicy:
    """Normalize a selection policy name. Raises ValueError if unknown."""
    policy = value.strip().lower()
    if policy not in VALID_POLICIES:
        msg = f"Invalid selection policy {value!r}. Must be one of: {', '.join(sorted(VALID_POLICIES))}"
        raise ValueError(msg)
    return "lifo" if policy == "lifo" else "fifo"


def parse_port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        msg = f"Invalid PORT {value!r}: must be an integer"
        raise ValueError(msg) from None
    if not (1 <= port <= 65535):
        msg = f"Invalid PORT {port}: must be between 1 and 65535"
        raise ValueError(msg)
    return port


def load_config(environ: Mapping[str, str] | None = None) -> TrackerConfig:
    """Build a TrackerConfig from the environment (``os.environ`` by default)."""
    env = os.environ if environ is None else environ

    raw_file = env.get("ISSUES_FILE")
    issues_file = Path(raw_file).resolve() if raw_file else (Path.cwd() / DEFAULT_FILENAME).resolve()

    raw_log_dir = env.get("ISSUES_LOG_DIR")
    return TrackerConfig(
        issues_file=issues_file,
        selection_policy=parse_policy(env.get("ISSUES_SELECTION_POLICY", DEFAULT_POLICY)),
        host=env.get("ISSUES_HOST") or DEFAULT_HOST,
        port=parse_port(env["PORT"]) if env.get("PORT") else DEFAULT_PORT,
        log_dir=Path(raw_log_dir).resolve() if raw_log_dir else None,
    )
