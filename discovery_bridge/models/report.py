"""Per-run summary of a reconciliation run"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

SUMMARY_PREVIEW_ITEMS = 5
SUMMARY_PREVIEW_ERRORS = 3


@dataclass
class RecordError:
    record: str
    operation: str
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.record} ({self.operation}, {self.kind}): {self.message}"


@dataclass
class StatusTransition:
    record: str
    from_status: str
    to_status: str


@dataclass
class RunSummary:
    """Everything a run did, plus everything it decided not to do."""

    run_id: str
    dry_run: bool = False
    started_at: str = ""
    finished_at: Optional[str] = None
    status: str = "running"

    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    skipped_unchanged: List[str] = field(default_factory=list)
    skipped_filtered: List[str] = field(default_factory=list)
    transitions: List[StatusTransition] = field(default_factory=list)
    ambiguous: List[str] = field(default_factory=list)
    stale_cleaned: List[str] = field(default_factory=list)
    created_in_source: List[str] = field(default_factory=list)
    comments_mirrored: int = 0
    warnings: List[str] = field(default_factory=list)
    errors: List[RecordError] = field(default_factory=list)

    def add_error(self, record: str, operation: str, kind: str, message: str) -> None:
        self.errors.append(RecordError(record=record, operation=operation, kind=kind, message=message))

    @property
    def write_count(self) -> int:
        return (
            len(self.created)
            + len(self.updated)
            + len(self.transitions)
            + len(self.created_in_source)
            + self.comments_mirrored
        )

    def stats(self) -> Dict[str, int]:
        return {
            "created": len(self.created),
            "updated": len(self.updated),
            "skipped": len(self.skipped_unchanged),
            "filtered": len(self.skipped_filtered),
            "transitioned": len(self.transitions),
            "ambiguous": len(self.ambiguous),
            "stale_cleaned": len(self.stale_cleaned),
            "created_in_source": len(self.created_in_source),
            "comments": self.comments_mirrored,
            "warnings": len(self.warnings),
            "errors": len(self.errors),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "dry_run": self.dry_run,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "stats": self.stats(),
            "created": list(self.created),
            "updated": list(self.updated),
            "transitions": [
                {"record": t.record, "from": t.from_status, "to": t.to_status} for t in self.transitions
            ],
            "ambiguous": list(self.ambiguous),
            "stale_cleaned": list(self.stale_cleaned),
            "created_in_source": list(self.created_in_source),
            "warnings": list(self.warnings),
            "errors": [
                {"record": e.record, "operation": e.operation, "kind": e.kind, "message": e.message}
                for e in self.errors
            ],
        }

    def format_text(self) -> str:
        """Human-readable summary for logs and the CLI."""
        header = f"Sync run {self.run_id}"
        if self.dry_run:
            header += " (DRY RUN)"
        lines = [header]

        s = self.stats()
        lines.append(
            f"{s['created']} created, {s['updated']} updated, {s['skipped']} unchanged, "
            f"{s['filtered']} filtered, {s['transitioned']} transitioned, "
            f"{s['comments']} comments, {s['errors']} errors"
        )

        for label, items in (("Created", self.created), ("Updated", self.updated)):
            if not items:
                continue
            lines.append(f"{label}:")
            for item in items[:SUMMARY_PREVIEW_ITEMS]:
                lines.append(f"  {item}")
            if len(items) > SUMMARY_PREVIEW_ITEMS:
                lines.append(f"  ... and {len(items) - SUMMARY_PREVIEW_ITEMS} more")

        if self.warnings:
            lines.append(f"Warnings: {len(self.warnings)}")

        if self.errors:
            lines.append("Errors:")
            for err in self.errors[:SUMMARY_PREVIEW_ERRORS]:
                lines.append(f"  {err}")
            if len(self.errors) > SUMMARY_PREVIEW_ERRORS:
                lines.append(f"  ... and {len(self.errors) - SUMMARY_PREVIEW_ERRORS} more")

        return "\n".join(lines)
