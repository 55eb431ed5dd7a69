"""
Operation ledger — what gearbox did to this host, and when.

The manifest only holds the current state. The ledger keeps one NDJSON
line per install, uninstall, sync or restore run in
``<home>/audit.ndjson`` so that state can be explained afterwards.
Lines are appended and never rewritten.
"""

from __future__ import annotations

import logging
import secrets
from collections import deque
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

OperationType = Literal["install", "uninstall", "sync", "restore"]
RunStatus = Literal["ok", "partial", "failed"]


def generate_operation_id() -> str:
    """``op-<UTC yyyymmdd-hhmmss>-<6 hex>``."""
    stamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return f"op-{stamp}-{secrets.token_hex(3)}"


def summarize_status(succeeded: int, failed: int) -> RunStatus:
    if failed == 0:
        return "ok"
    return "partial" if succeeded else "failed"


class AuditEntry(BaseModel):
    """Summary of one gearbox run."""

    operation_type: OperationType
    status: RunStatus = "ok"
    operation_id: str = Field(default_factory=generate_operation_id)
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())

    tools: list[str] = Field(default_factory=list)
    tools_total: int = 0
    tools_succeeded: int = 0
    tools_failed: int = 0
    tools_skipped: int = 0
    duration_ms: int = 0
    dry_run: bool = False
    errors: list[str] = Field(default_factory=list)

    # build type, safety level, backup name, ...
    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Appends entries to, and reads them back from, the ledger file."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append one entry.

        I/O errors are logged and swallowed: the run being recorded has
        already happened and must not be reported as failed because of
        its ledger line.
        """
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(entry.model_dump_json() + "\n")
        except OSError as e:
            logger.error("Could not append to %s: %s", self._path, e)
            return
        logger.debug("Ledger: %s %s (%s)", entry.operation_type, entry.operation_id, entry.status)

    def read_all(self) -> list[AuditEntry]:
        """Every readable entry, oldest first."""
        return list(self._entries())

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        """The last ``n`` entries, oldest first."""
        return list(deque(self._entries(), maxlen=n)) if n > 0 else []

    def _entries(self) -> Iterator[AuditEntry]:
        if not self._path.is_file():
            return
        try:
            with self._path.open(encoding="utf-8") as f:
                for number, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        yield AuditEntry.model_validate_json(line)
                    except ValidationError as e:
                        logger.warning("%s:%d: skipping unreadable entry (%s)", self._path.name, number, e.error_count())
        except OSError as e:
            logger.error("Could not read %s: %s", self._path, e)
