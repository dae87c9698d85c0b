"""Explicit per-run context handed to every reconciliation component"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from discovery_bridge.models.report import RunSummary

logger = logging.getLogger("discovery_bridge.sync")


class _RunLoggerAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"[run {self.extra['run_id']}] {msg}", kwargs


@dataclass
class SyncContext:
    """Run id, preview flag and diagnostic sinks for one run.

    Components log through ``ctx.log`` and report through ``warn`` / ``error``
    so that tests can inspect ``ctx.summary`` instead of global log capture.
    """

    dry_run: bool = False
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    summary: Optional[RunSummary] = None
    debug_messages: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.summary is None:
            self.summary = RunSummary(run_id=self.run_id, dry_run=self.dry_run, started_at=utcnow_iso())
        self.log = _RunLoggerAdapter(logger, {"run_id": self.run_id})

    @property
    def warnings(self) -> List[str]:
        return self.summary.warnings

    @property
    def errors(self):
        return self.summary.errors

    def warn(self, message: str) -> None:
        self.summary.warnings.append(message)
        self.log.warning(message)

    def error(self, record: str, operation: str, kind: str, message: str) -> None:
        self.summary.add_error(record, operation, kind, message)
        self.log.error(f"{record}: {operation} failed ({kind}): {message}")

    def debug(self, message: str) -> None:
        self.debug_messages.append(message)
        self.log.debug(message)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
