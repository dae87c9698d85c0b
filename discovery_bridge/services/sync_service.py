"""JPD <-> GitLab reconciliation service"""

from typing import Dict, List, Optional, Set, Tuple

from discovery_bridge.models.metadata import SyncMetadata
from discovery_bridge.models.records import (
    DestinationRecord,
    DestinationState,
    HierarchyLevel,
    Relationships,
    SourceRecord,
)
from discovery_bridge.models.report import RunSummary
from discovery_bridge.services.adapters import source_record_from_jira
from discovery_bridge.services.adf import markdown_to_adf
from discovery_bridge.services.change_detector import fingerprint, needs_write
from discovery_bridge.services.comments import CommentSyncManager
from discovery_bridge.services.context import SyncContext, utcnow_iso
from discovery_bridge.services.errors import NotFoundError, SyncError, classify
from discovery_bridge.services.field_mapping import FieldMapper
from discovery_bridge.services.field_validator import FieldValidator
from discovery_bridge.services.hierarchy import (
    SourceIndex,
    destination_depth,
    extract_relationships,
    hierarchy_level,
    render_cross_references,
)
from discovery_bridge.services.metadata import (
    BodyMetadataStore,
    MetadataStore,
    find_metadata_block,
    strip_metadata,
)
from discovery_bridge.services.status import StatusReconciler
from discovery_bridge.sync_config import SyncConfig, SyncDirection


class SyncService:
    """Runs one reconciliation pass over a JPD project and a GitLab project.

    A run is: optional field validation, then JPD -> GitLab (create / update),
    GitLab -> JPD status transitions, optional GitLab -> JPD creation of new
    ideas, and finally comment mirroring for every linked pair. Failures are
    isolated per record; authentication and configuration errors abort.
    """

    def __init__(
        self,
        source_client,
        destination_client,
        config: SyncConfig,
        project_key: str,
        source_base_url: str = "",
        destination_base_url: str = "",
        metadata_store: Optional[MetadataStore] = None,
    ):
        self.source = source_client
        self.destination = destination_client
        self.config = config
        self.project_key = project_key
        self.source_base_url = source_base_url.rstrip("/")
        self.destination_base_url = destination_base_url.rstrip("/")
        self.store = metadata_store or BodyMetadataStore(destination_client)
        self.mapper = FieldMapper(config.mappings)

        self.ctx: Optional[SyncContext] = None
        self.source_records: Dict[str, SourceRecord] = {}
        self.destination_records: Dict[int, DestinationRecord] = {}
        self.index = SourceIndex()
        # Destination ids whose stale metadata was removed during the current run
        self.unlinked_this_run: Set[int] = set()
        self._status_labels = {r.destination_label for r in config.statuses.values() if r.destination_label}

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, dry_run: bool = False) -> RunSummary:
        ctx = SyncContext(dry_run=dry_run)
        self.ctx = ctx
        summary = ctx.summary
        direction = self.config.sync.direction
        ctx.log.info(
            f"Starting sync for {self.project_key} ({direction.value}{', dry run' if dry_run else ''})"
        )

        try:
            if self.config.sync.validate_fields and self.config.fields:
                FieldValidator(self.source, self.config.fields).ensure_valid(self.project_key)

            self._load_destination()
            self.source_records = {}
            self.unlinked_this_run = set()

            if direction.pushes_to_destination:
                self._load_source()
                self._push_to_destination()

            if direction.pulls_from_destination:
                self._reconcile_statuses()
                if self.config.creation.enabled:
                    self._create_in_source()

            if direction == SyncDirection.BIDIRECTIONAL and self.config.sync.comments:
                self._sync_comments()

            summary.status = "partial" if summary.errors else "success"
        except Exception as e:
            kind = classify(e)
            ctx.error("run", "sync", kind.value, str(e))
            summary.status = "failed"
        finally:
            summary.finished_at = utcnow_iso()

        ctx.log.info(summary.format_text())
        return summary

    def _record_failure(self, record: str, operation: str, exc: Exception) -> None:
        kind = classify(exc)
        if kind.fatal:
            # Recorded once by run()
            self.ctx.log.error(f"{record}: {operation} failed ({kind.value}), aborting run")
            raise exc
        self.ctx.error(record, operation, kind.value, str(exc))

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------

    def _load_destination(self) -> None:
        records = self.destination.list_linked_records()
        self.destination_records = {}
        for record in records:
            record.metadata = self.store.load(record)
            self.destination_records[record.id] = record
        self.index = SourceIndex.from_destination_records(self.destination_records.values())
        self.ctx.log.info(
            f"Loaded {len(self.destination_records)} GitLab issues ({len(self.index)} linked)"
        )

    def _load_source(self) -> None:
        raw_records = self.source.search(
            self.config.query_for(self.project_key), limit=self.config.sync.max_results
        )
        for raw in raw_records:
            record = source_record_from_jira(raw, self.source_base_url)
            self.source_records[record.key] = record
        self.ctx.log.info(f"Loaded {len(self.source_records)} JPD ideas")

    def _lookup_source(self, key: str) -> Optional[SourceRecord]:
        record = self.source_records.get(key)
        if record is not None:
            return record
        raw = self.source.get_record(key)
        if raw is None:
            return None
        record = source_record_from_jira(raw, self.source_base_url)
        self.source_records[key] = record
        return record

    def _remember(self, record: DestinationRecord, metadata: Optional[SyncMetadata]) -> DestinationRecord:
        record.metadata = metadata
        self.destination_records[record.id] = record
        if metadata is not None:
            self.index.add(metadata.source_id, record.id)
        return record

    # ------------------------------------------------------------------
    # JPD -> GitLab
    # ------------------------------------------------------------------

    def _processing_order(
        self, plans: List[Tuple[SourceRecord, Relationships, HierarchyLevel]]
    ) -> List[Tuple[SourceRecord, Relationships, HierarchyLevel]]:
        """Parents before children, then by level; stable otherwise."""
        parents = {record.key: rels.parent for record, rels, _ in plans}

        def depth(key: str) -> int:
            seen = {key}
            d = 0
            parent = parents.get(key)
            while parent is not None and parent in parents and parent not in seen:
                seen.add(parent)
                d += 1
                parent = parents.get(parent)
            return d

        return sorted(plans, key=lambda plan: (depth(plan[0].key), plan[2].rank))

    def _push_to_destination(self) -> None:
        hierarchy = self.config.hierarchy
        plans = []
        for record in self.source_records.values():
            level = hierarchy_level(record.status, hierarchy)
            plans.append((record, extract_relationships(record, hierarchy), level))

        for record, relationships, level in self._processing_order(plans):
            try:
                self._sync_source_record(record, relationships, level)
            except Exception as e:
                self._record_failure(record.key, "sync to GitLab", e)

    def _is_filtered(self, record: SourceRecord, level: HierarchyLevel) -> bool:
        rule = self.config.status_rule(record.status)
        if rule is not None and not rule.sync:
            return True
        levels = self.config.hierarchy.sync_levels
        return levels is not None and level not in levels

    def _sync_source_record(
        self, record: SourceRecord, relationships: Relationships, level: HierarchyLevel
    ) -> None:
        ctx = self.ctx
        if self._is_filtered(record, level):
            ctx.debug(f"{record.key}: status '{record.status}' ({level.value}) is not synced")
            ctx.summary.skipped_filtered.append(record.key)
            return

        existing_id = self.index.get(record.key)
        existing = self.destination_records.get(existing_id) if existing_id is not None else None
        new_hash = fingerprint(record, relationships, level)
        child_closed = {rid: r.is_closed for rid, r in self.destination_records.items()}
        if existing is not None and not needs_write(
            existing.metadata, new_hash, relationships, existing.body, self.index, child_closed
        ):
            ctx.summary.skipped_unchanged.append(record.key)
            return

        parent_id = self._parent_to_link(record, relationships, existing)
        rendered_relationships = relationships
        if relationships.parent and parent_id is None and self.index.get(relationships.parent) is not None:
            # Flattened: keep the parent only as a related reference
            rendered_relationships = Relationships(
                parent=None,
                children=relationships.children,
                related=[relationships.parent] + relationships.related,
            )

        metadata = SyncMetadata(
            source_id=record.key,
            source_updated_at=record.updated_at,
            last_sync_time=utcnow_iso(),
            content_hash=new_hash,
            hierarchy_level=level.value,
            parent_source_id=relationships.parent,
            parent_destination_id=parent_id,
            child_source_ids=list(relationships.children),
            origin_link=record.url,
        )
        payload = self._render_payload(record, rendered_relationships, level, existing, metadata)

        if ctx.dry_run:
            action = f"update #{existing.id}" if existing else "create"
            ctx.log.info(f"[dry run] would {action} for {record.key}")
            (ctx.summary.updated if existing else ctx.summary.created).append(record.key)
            return

        if existing is None:
            written = self.destination.create_record(payload)
            ctx.summary.created.append(f"{record.key} -> #{written.id}")
        else:
            written = self.destination.update_record(existing.id, payload)
            ctx.summary.updated.append(f"{record.key} -> #{written.id}")
        self.store.commit(written.id, metadata)
        self._remember(written, metadata)

        # A flattened child is not linked, but the parent still lists it as a subtask
        listing_parent_id = parent_id if parent_id is not None else self.index.get(relationships.parent)
        if listing_parent_id is not None:
            changed = self.destination.ensure_child_in_parent_task_list(
                listing_parent_id, written.id, written.title, written.is_closed, child_source_key=record.key
            )
            if changed:
                refreshed = self.destination.get_record(listing_parent_id)
                if refreshed is not None:
                    self._remember(refreshed, self.store.load(refreshed))

    def _parent_to_link(
        self,
        record: SourceRecord,
        relationships: Relationships,
        existing: Optional[DestinationRecord],
    ) -> Optional[int]:
        """Destination id of the mirrored parent, or None when it must stay unlinked."""
        parent_id = self.index.get(relationships.parent)
        if parent_id is None:
            return None
        already_linked = (
            existing is not None
            and existing.metadata is not None
            and existing.metadata.parent_destination_id == parent_id
        )
        if already_linked:
            return parent_id

        max_depth = self.config.hierarchy.max_depth
        depth, cycle = destination_depth(
            parent_id, self.destination_records, child_id=existing.id if existing else None
        )
        if cycle:
            self.ctx.warn(f"{record.key}: linking under #{parent_id} would create a cycle; creating unlinked")
            return None
        if depth + 1 > max_depth:
            self.ctx.warn(
                f"{record.key}: nesting under #{parent_id} exceeds depth {max_depth}; creating as top-level issue"
            )
            return None
        return parent_id

    def _render_payload(
        self,
        record: SourceRecord,
        relationships: Relationships,
        level: HierarchyLevel,
        existing: Optional[DestinationRecord],
        metadata: SyncMetadata,
    ) -> Dict[str, object]:
        mapped = self.mapper.render(record, level)
        references = render_cross_references(
            relationships, self.index, self.destination_records, self.source_base_url
        )
        body = "\n\n".join(part for part in (mapped.body.strip(), references) if part)
        body = self.store.prepare_body(body, metadata)

        rule = self.config.status_rule(record.status)
        labels: List[str] = []
        if existing is not None:
            labels = [label for label in existing.labels if label not in self._status_labels]
        for label in mapped.labels:
            if label not in labels:
                labels.append(label)
        if rule is not None and rule.destination_label and rule.destination_label not in labels:
            labels.append(rule.destination_label)

        if rule is not None and rule.destination_state is not None:
            state = rule.destination_state
        else:
            state = existing.state if existing is not None else DestinationState.OPEN

        return {"title": mapped.title, "description": body, "labels": labels, "state": state}

    # ------------------------------------------------------------------
    # GitLab -> JPD
    # ------------------------------------------------------------------

    def _reconcile_statuses(self) -> None:
        reconciler = StatusReconciler(self.source, self.store, self.config.statuses, self.ctx)
        for record in list(self.destination_records.values()):
            if record.metadata is None:
                continue
            source_id = record.metadata.source_id
            try:
                reconciler.reconcile(record, self._lookup_source)
            except Exception as e:
                self._record_failure(f"{source_id} (#{record.id})", "status sync", e)
                continue
            if record.metadata is None:
                self.index.remove(source_id)
                self.unlinked_this_run.add(record.id)

    def _create_in_source(self) -> None:
        for record in list(self.destination_records.values()):
            if record.metadata is not None:
                continue
            if record.id in self.unlinked_this_run:
                self.ctx.debug(f"#{record.id}: linked idea was deleted this run, not creating a new one")
                continue
            if find_metadata_block(record.body) is not None:
                self.ctx.warn(f"#{record.id}: unreadable sync metadata, not creating a JPD idea")
                continue
            try:
                self._create_source_for(record)
            except Exception as e:
                self._record_failure(f"#{record.id}", "create in JPD", e)

    @staticmethod
    def _pick(labels: List[str], mapping: Dict[str, str], default: Optional[str]) -> Optional[str]:
        for label in labels:
            if label in mapping:
                return mapping[label]
        return default

    def _create_source_for(self, record: DestinationRecord) -> None:
        ctx = self.ctx
        creation = self.config.creation
        fields: Dict[str, object] = {
            "project": {"key": self.project_key},
            "summary": record.title,
            "issuetype": {"name": creation.issue_type},
        }
        description = strip_metadata(record.body)
        if description:
            fields["description"] = markdown_to_adf(description)
        category = self._pick(record.labels, creation.label_to_category, creation.default_category)
        if creation.category_field_id and category:
            fields[creation.category_field_id] = {"value": category}
        priority = self._pick(record.labels, creation.label_to_priority, creation.default_priority)
        if creation.priority_field_id and priority:
            fields[creation.priority_field_id] = {"value": priority}

        if ctx.dry_run:
            ctx.log.info(f"[dry run] would create a JPD idea for #{record.id} '{record.title}'")
            ctx.summary.created_in_source.append(f"#{record.id}")
            return

        key = self.source.create_record(fields)

        if creation.default_status:
            try:
                self.source.transition_to_status(key, creation.default_status)
            except SyncError as e:
                if classify(e).fatal:
                    raise
                ctx.warn(f"{key}: could not move to '{creation.default_status}': {e}")

        parent_id = self.destination.get_parent_link(record.id)
        parent = self.destination_records.get(parent_id) if parent_id is not None else None
        linked_parent_id = None
        if parent is not None and parent.metadata is not None:
            try:
                self.source.create_link(key, parent.metadata.source_id, creation.link_type)
                linked_parent_id = parent.id
            except SyncError as e:
                if classify(e).fatal:
                    raise
                ctx.warn(f"{key}: could not link to parent {parent.metadata.source_id}: {e}")

        raw = self.source.get_record(key)
        source = (
            source_record_from_jira(raw, self.source_base_url)
            if raw is not None
            else SourceRecord(key=key, title=record.title, status="", updated_at="")
        )
        level = hierarchy_level(source.status, self.config.hierarchy)
        relationships = extract_relationships(source, self.config.hierarchy)
        metadata = SyncMetadata(
            source_id=key,
            source_updated_at=source.updated_at,
            last_sync_time=utcnow_iso(),
            content_hash=fingerprint(source, relationships, level),
            hierarchy_level=level.value,
            parent_source_id=parent.metadata.source_id if linked_parent_id is not None else None,
            parent_destination_id=linked_parent_id,
            child_source_ids=list(relationships.children),
            origin_link=source.url,
        )
        body = self.store.prepare_body(record.body, metadata)
        written = self.destination.update_record(record.id, {"description": body})
        self.store.commit(record.id, metadata)
        self._remember(written, metadata)
        self.source_records[key] = source
        ctx.summary.created_in_source.append(f"#{record.id} -> {key}")
        ctx.log.info(f"Created JPD idea {key} from GitLab issue #{record.id}")

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def _sync_comments(self) -> None:
        manager = CommentSyncManager(
            self.source, self.destination, self.ctx, self.source_base_url, self.destination_base_url
        )
        for record in list(self.destination_records.values()):
            if record.metadata is None:
                continue
            key = record.metadata.source_id
            try:
                manager.sync_pair(key, record.id)
            except NotFoundError:
                self.ctx.log.info(f"#{record.id}: {key} no longer exists, removing sync metadata")
                self.store.discard(record)
                self.index.remove(key)
                self.unlinked_this_run.add(record.id)
                self.ctx.summary.stale_cleaned.append(f"#{record.id} ({key})")
            except Exception as e:
                self._record_failure(f"{key} (#{record.id})", "comment sync", e)
