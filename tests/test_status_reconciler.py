import unittest
from types import SimpleNamespace
from unittest.mock import Mock


def _rules(raw):
    from discovery_bridge.sync_config import StatusRule

    return {name: StatusRule(**rule) for name, rule in raw.items()}


def _dest(state="open", labels=(), source_id="MTT-1"):
    from discovery_bridge.models.metadata import SyncMetadata
    from discovery_bridge.models.records import DestinationRecord, DestinationState

    return DestinationRecord(
        id=7,
        title="t",
        state=DestinationState(state),
        labels=list(labels),
        metadata=SyncMetadata(source_id=source_id) if source_id else None,
    )


def _source(status):
    from discovery_bridge.models.records import SourceRecord

    return SourceRecord(key="MTT-1", title="t", status=status, updated_at="")


class ReverseMapTests(unittest.TestCase):
    def test_buckets_include_unsynced_statuses(self):
        from discovery_bridge.services.status import build_reverse_status_map

        reverse = build_reverse_status_map(
            _rules(
                {
                    "Backlog": {"destination_state": "open"},
                    "Ready": {"destination_state": "open", "destination_label": "ready"},
                    "Done": {"destination_state": "closed"},
                    "Archived": {"destination_state": "closed", "sync": False},
                }
            )
        )

        self.assertEqual(reverse["state:open"], ["Backlog", "Ready"])
        self.assertEqual(reverse["state:closed"], ["Done", "Archived"])
        self.assertEqual(reverse["label:ready"], ["Ready"])

    def test_resolution_outcomes(self):
        from discovery_bridge.services.status import Resolution, build_reverse_status_map, resolve_target_status

        reverse = build_reverse_status_map(
            _rules(
                {
                    "Backlog": {"destination_state": "open"},
                    "Ready": {"destination_state": "open", "destination_label": "ready"},
                    "Done": {"destination_state": "closed"},
                    "Parked": {"destination_label": "parked"},
                }
            )
        )

        closed = resolve_target_status(_dest("closed"), reverse)
        self.assertEqual((closed.outcome, closed.status), (Resolution.RESOLVED, "Done"))

        ambiguous = resolve_target_status(_dest("open"), reverse)
        self.assertEqual(ambiguous.outcome, Resolution.AMBIGUOUS)
        self.assertEqual(ambiguous.candidates, ["Backlog", "Ready"])

        labelled = resolve_target_status(_dest("open", labels=["ready"]), reverse)
        self.assertEqual(labelled.outcome, Resolution.AMBIGUOUS)
        self.assertIsNone(labelled.status)

        reverse_no_closed = build_reverse_status_map(_rules({"Parked": {"destination_label": "parked"}}))
        by_label = resolve_target_status(_dest("closed", labels=["parked"]), reverse_no_closed)
        self.assertEqual(by_label.status, "Parked")
        self.assertEqual(resolve_target_status(_dest("closed"), reverse_no_closed).outcome, Resolution.UNMAPPED)

    def test_find_transition_matches_target_status_case_insensitively(self):
        from discovery_bridge.services.status import find_transition

        transitions = [
            {"id": "11", "name": "Start", "to": {"name": "In Progress"}},
            {"id": "31", "name": "Finish", "to": {"name": "Done"}},
        ]
        self.assertEqual(find_transition(transitions, "done")["id"], "31")
        self.assertIsNone(find_transition(transitions, "Archived"))


class StatusReconcilerTests(unittest.TestCase):
    STATUSES = {
        "Ready": {"destination_state": "open"},
        "Done": {"destination_state": "closed"},
    }

    def _reconciler(self, dry_run=False, transitions=None):
        from discovery_bridge.services.context import SyncContext
        from discovery_bridge.services.status import StatusReconciler

        source = Mock()
        source.list_transitions.return_value = transitions or [
            {"id": "31", "name": "Finish", "to": {"name": "Done"}}
        ]
        store = Mock()
        ctx = SyncContext(dry_run=dry_run)
        return StatusReconciler(source, store, _rules(self.STATUSES), ctx), source, store, ctx

    def test_transition_applied_when_state_differs(self):
        from discovery_bridge.services.status import Outcome

        reconciler, source, _, ctx = self._reconciler()
        record = _source("Ready")

        outcome = reconciler.reconcile(_dest("closed"), lambda key: record)

        self.assertEqual(outcome, Outcome.TRANSITIONED)
        source.transition.assert_called_once_with("MTT-1", "31")
        self.assertEqual(record.status, "Done")
        self.assertEqual(ctx.summary.transitions[0].from_status, "Ready")

    def test_no_call_when_already_in_target_status(self):
        from discovery_bridge.services.status import Outcome

        reconciler, source, _, _ = self._reconciler()

        self.assertEqual(reconciler.reconcile(_dest("open"), lambda key: _source("Ready")), Outcome.UNCHANGED)
        source.list_transitions.assert_not_called()

    def test_dry_run_predicts_without_calling(self):
        from discovery_bridge.services.status import Outcome

        reconciler, source, _, ctx = self._reconciler(dry_run=True)

        outcome = reconciler.reconcile(_dest("closed"), lambda key: _source("Ready"))

        self.assertEqual(outcome, Outcome.TRANSITIONED)
        source.transition.assert_not_called()
        self.assertEqual(len(ctx.summary.transitions), 1)

    def test_missing_transition_warns(self):
        from discovery_bridge.services.status import Outcome

        reconciler, source, _, ctx = self._reconciler(
            transitions=[{"id": "11", "name": "Start", "to": {"name": "In Progress"}}]
        )

        outcome = reconciler.reconcile(_dest("closed"), lambda key: _source("Ready"))

        self.assertEqual(outcome, Outcome.NO_TRANSITION)
        source.transition.assert_not_called()
        self.assertEqual(len(ctx.warnings), 1)
        self.assertIn("In Progress", ctx.warnings[0])

    def test_stale_link_is_discarded_even_in_dry_run(self):
        from discovery_bridge.services.status import Outcome

        reconciler, source, store, ctx = self._reconciler(dry_run=True)
        record = _dest("closed")

        outcome = reconciler.reconcile(record, lambda key: None)

        self.assertEqual(outcome, Outcome.STALE_CLEANED)
        store.discard.assert_called_once_with(record)
        self.assertEqual(ctx.summary.stale_cleaned, ["#7 (MTT-1)"])
        source.list_transitions.assert_not_called()

    def test_unlinked_record_is_ignored(self):
        from discovery_bridge.services.status import Outcome

        reconciler, _, _, _ = self._reconciler()
        lookup = Mock()

        self.assertEqual(reconciler.reconcile(_dest(source_id=None), lookup), Outcome.NOT_LINKED)
        lookup.assert_not_called()

    def test_ambiguous_is_recorded(self):
        from discovery_bridge.services.context import SyncContext
        from discovery_bridge.services.status import Outcome, StatusReconciler

        source = SimpleNamespace(list_transitions=Mock(), transition=Mock())
        ctx = SyncContext()
        reconciler = StatusReconciler(
            source,
            Mock(),
            _rules({"Backlog": {"destination_state": "open"}, "Ready": {"destination_state": "open"}}),
            ctx,
        )

        outcome = reconciler.reconcile(_dest("open"), lambda key: _source("Done"))

        self.assertEqual(outcome, Outcome.AMBIGUOUS)
        self.assertEqual(ctx.summary.ambiguous, ["MTT-1 (#7)"])
        source.list_transitions.assert_not_called()


if __name__ == "__main__":
    unittest.main()
