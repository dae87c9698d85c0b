"""Destination -> source status reconciliation.

Every configured source status maps onto a destination state (and optionally a
destination label). Inverting that table gives, for each destination state or
label, the list of source statuses that could have produced it. A transition
is applied only when that list holds exactly one status.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from discovery_bridge.models.records import DestinationRecord, SourceRecord
from discovery_bridge.models.report import StatusTransition
from discovery_bridge.services.context import SyncContext
from discovery_bridge.services.errors import TransitionNotFoundError
from discovery_bridge.services.metadata import MetadataStore
from discovery_bridge.sync_config import StatusRule

STATE_BUCKET = "state:"
LABEL_BUCKET = "label:"


def build_reverse_status_map(statuses: Dict[str, StatusRule]) -> Dict[str, List[str]]:
    """Invert status -> destination attributes into bucket -> [statuses]."""
    reverse: Dict[str, List[str]] = {}
    for status, rule in statuses.items():
        if rule.destination_state is not None:
            reverse.setdefault(f"{STATE_BUCKET}{rule.destination_state.value}", []).append(status)
        if rule.destination_label:
            reverse.setdefault(f"{LABEL_BUCKET}{rule.destination_label}", []).append(status)
    return reverse


class Resolution(str, enum.Enum):
    RESOLVED = "resolved"
    AMBIGUOUS = "ambiguous"
    UNMAPPED = "unmapped"


@dataclass
class StatusResolution:
    outcome: Resolution
    status: Optional[str] = None
    candidates: List[str] = field(default_factory=list)


def resolve_target_status(record: DestinationRecord, reverse_map: Dict[str, List[str]]) -> StatusResolution:
    """Pick the source status a destination record's state points at.

    The state bucket decides when it exists: one entry resolves, several are
    ambiguous and never narrowed by labels. Label buckets are consulted only
    when the state maps to nothing.
    """
    state_candidates = reverse_map.get(f"{STATE_BUCKET}{record.state.value}", [])
    if len(state_candidates) == 1:
        return StatusResolution(Resolution.RESOLVED, state_candidates[0], list(state_candidates))
    if len(state_candidates) > 1:
        return StatusResolution(Resolution.AMBIGUOUS, None, list(state_candidates))

    label_candidates: List[str] = []
    for label in record.labels:
        for status in reverse_map.get(f"{LABEL_BUCKET}{label}", []):
            if status not in label_candidates:
                label_candidates.append(status)

    if len(label_candidates) == 1:
        return StatusResolution(Resolution.RESOLVED, label_candidates[0], label_candidates)
    if len(label_candidates) > 1:
        return StatusResolution(Resolution.AMBIGUOUS, None, label_candidates)
    return StatusResolution(Resolution.UNMAPPED)


def find_transition(transitions: List[Dict[str, Any]], target_status: str) -> Optional[Dict[str, Any]]:
    """Legal transition whose destination status is ``target_status``."""
    wanted = target_status.strip().lower()
    for transition in transitions:
        to_name = ((transition.get("to") or {}).get("name") or "").strip().lower()
        if to_name == wanted:
            return transition
    return None


class Outcome(str, enum.Enum):
    TRANSITIONED = "transitioned"
    UNCHANGED = "unchanged"
    AMBIGUOUS = "ambiguous"
    UNMAPPED = "unmapped"
    STALE_CLEANED = "stale_cleaned"
    NO_TRANSITION = "no_transition"
    NOT_LINKED = "not_linked"


class StatusReconciler:
    """Pushes destination state changes back into the source workflow"""

    def __init__(
        self,
        source_client,
        metadata_store: MetadataStore,
        statuses: Dict[str, StatusRule],
        ctx: SyncContext,
    ):
        self.source = source_client
        self.store = metadata_store
        self.ctx = ctx
        self.reverse_map = build_reverse_status_map(statuses)

    def reconcile(
        self,
        record: DestinationRecord,
        lookup: Callable[[str], Optional[SourceRecord]],
    ) -> Outcome:
        metadata = record.metadata
        if metadata is None:
            return Outcome.NOT_LINKED

        source = lookup(metadata.source_id)
        if source is None:
            # Runs in preview mode too: this repairs state instead of creating it.
            self.ctx.log.info(f"#{record.id}: {metadata.source_id} no longer exists, removing sync metadata")
            self.store.discard(record)
            self.ctx.summary.stale_cleaned.append(f"#{record.id} ({metadata.source_id})")
            return Outcome.STALE_CLEANED

        resolution = resolve_target_status(record, self.reverse_map)
        if resolution.outcome == Resolution.AMBIGUOUS:
            self.ctx.log.info(
                f"#{record.id}: state '{record.state.value}' maps to several statuses "
                f"({', '.join(resolution.candidates)}); leaving {source.key} at '{source.status}'"
            )
            self.ctx.summary.ambiguous.append(f"{source.key} (#{record.id})")
            return Outcome.AMBIGUOUS
        if resolution.outcome == Resolution.UNMAPPED:
            self.ctx.debug(f"#{record.id}: no status mapped to state '{record.state.value}'")
            return Outcome.UNMAPPED

        target = resolution.status
        if target == source.status:
            return Outcome.UNCHANGED

        transitions = self.source.list_transitions(source.key)
        transition = find_transition(transitions, target)
        if transition is None:
            available = [((t.get("to") or {}).get("name") or t.get("name", "")) for t in transitions]
            self.ctx.warn(str(TransitionNotFoundError(source.key, target, available)))
            return Outcome.NO_TRANSITION

        if self.ctx.dry_run:
            self.ctx.log.info(f"[dry run] would transition {source.key}: '{source.status}' -> '{target}'")
        else:
            self.source.transition(source.key, transition["id"])
            self.ctx.log.info(f"Transitioned {source.key}: '{source.status}' -> '{target}'")
        self.ctx.summary.transitions.append(
            StatusTransition(record=source.key, from_status=source.status, to_status=target)
        )
        source.status = target
        return Outcome.TRANSITIONED
