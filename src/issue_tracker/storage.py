"""Durable storage of the whole issue store as one JSON artifact.

The file is always replaced as a unit: the full store is written to a
co-located ``.tmp`` file, fsynced, then moved over the target with
``os.replace()``. A reader never sees a half-written file.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path

from issue_tracker.errors import DecodeError
from issue_tracker.models import IssueStore

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "issues.json"
TMP_SUFFIX = ".tmp"


def write_atomic(path: Path, content: str) -> None:
    """Write content to path atomically via temp file + os.replace()."""
    tmp = path.with_suffix(path.suffix + TMP_SUFFIX)
    try:
        with tmp.open("w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


class IssueStorage:
    """Loads and saves an :class:`IssueStore` at a fixed path."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    @property
    def tmp_path(self) -> Path:
        return self.path.with_suffix(self.path.suffix + TMP_SUFFIX)

    def load(self) -> IssueStore:
        """Read the artifact. A missing file is an empty store, not an error.

        Raises DecodeError if the file exists but does not decode.
        """
        if not self.path.exists():
            logger.info("No issue file at %s, starting with an empty store", self.path)
            return IssueStore()
        raw = self.path.read_bytes()
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            msg = f"Corrupt issue file {self.path}: {exc}"
            raise DecodeError(msg) from exc
        try:
            store = IssueStore.from_dict(data)
        except DecodeError as exc:
            msg = f"Invalid issue file {self.path}: {exc}"
            raise DecodeError(msg) from exc
        count = len(store.issues)
        logger.info("Loaded %d issue(s) from %s", count, self.path, extra={"issue_count": count})
        return store

    def save(self, store: IssueStore) -> None:
        """Serialize the full store and commit it atomically.

        Raises OSError on write or rename failure; the previous file is left intact.
        """
        content = json.dumps(store.to_dict(), indent=2, ensure_ascii=False)
        count = len(store.issues)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_atomic(self.path, content)
        except OSError:
            logger.error("Failed to save %d issue(s) to %s", count, self.path, exc_info=True, extra={"issue_count": count})
            raise
        logger.debug("Saved %d issue(s) to %s", count, self.path, extra={"issue_count": count})
