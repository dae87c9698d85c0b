"""Parent / child / related resolution and cross-reference rendering"""

import re
from typing import Dict, Iterable, List, Optional, Tuple

from discovery_bridge.models.records import (
    DestinationRecord,
    HierarchyLevel,
    Relationships,
    SourceRecord,
)
from discovery_bridge.services.metadata import METADATA_BLOCK_RE, find_metadata_block
from discovery_bridge.sync_config import HierarchyConfig

PARENT_HEADER = "## 🔗 Parent"
SUBTASKS_HEADER = "## 📋 Subtasks"
RELATED_HEADER = "## 🔀 Related Issues"

_SUBTASKS_HEADER_RE = re.compile(r"^##\s+(?:📋\s+)?Subtasks\s*$", re.MULTILINE)
_PARENT_SECTION_RE = re.compile(r"^##\s+(?:🔗\s+)?Parent\s*$\s*^-\s+GitLab:\s*#(\d+)", re.MULTILINE)
_PARENT_LINE_RE = re.compile(r"Parent(?:\s+Epic)?:\s*#(\d+)", re.IGNORECASE)


def hierarchy_level(status: str, config: Optional[HierarchyConfig] = None) -> HierarchyLevel:
    """Level of a record; depends on its status name only."""
    config = config or HierarchyConfig()
    if status in config.epic_statuses:
        return HierarchyLevel.EPIC
    if status in config.story_statuses:
        return HierarchyLevel.STORY
    if status in config.task_statuses:
        return HierarchyLevel.TASK
    return HierarchyLevel.UNCLASSIFIED


def _unique(keys: Iterable[str], exclude: Iterable[Optional[str]] = ()) -> List[str]:
    seen = {k for k in exclude if k}
    result = []
    for key in keys:
        if key and key not in seen:
            seen.add(key)
            result.append(key)
    return result


def extract_relationships(record: SourceRecord, config: Optional[HierarchyConfig] = None) -> Relationships:
    """Direct neighbours of ``record``.

    An outward subtask link names the parent, inward subtask links name the
    children, every other link type is "related". An explicit parent field
    wins over a link-derived parent.
    """
    config = config or HierarchyConfig()
    if not config.enabled:
        return Relationships()

    subtask_type = config.subtask_link_type.lower()
    parent = record.parent_key
    children: List[str] = list(record.subtask_keys)
    related: List[str] = []

    for link in record.links:
        if link.key == record.key:
            continue
        if link.type_name.lower() == subtask_type:
            if link.direction == "outward":
                if parent is None:
                    parent = link.key
            else:
                children.append(link.key)
        else:
            related.append(link.key)

    children = _unique(children, exclude=[parent, record.key])
    related = _unique(related, exclude=[parent, record.key, *children])
    return Relationships(parent=parent, children=children, related=related)


class SourceIndex:
    """Source key -> destination id, built once per run and extended on create."""

    def __init__(self, mapping: Optional[Dict[str, int]] = None):
        self._map: Dict[str, int] = dict(mapping or {})

    @classmethod
    def from_destination_records(cls, records: Iterable[DestinationRecord]) -> "SourceIndex":
        index = cls()
        for record in records:
            if record.metadata is not None and record.metadata.source_id:
                # Lowest id wins when duplicates exist
                existing = index.get(record.metadata.source_id)
                if existing is None or record.id < existing:
                    index.add(record.metadata.source_id, record.id)
        return index

    def get(self, key: Optional[str]) -> Optional[int]:
        if key is None:
            return None
        return self._map.get(key)

    def add(self, key: str, destination_id: int) -> None:
        self._map[key] = destination_id

    def remove(self, key: str) -> None:
        self._map.pop(key, None)

    def items(self):
        return self._map.items()

    def __contains__(self, key: str) -> bool:
        return key in self._map

    def __len__(self) -> int:
        return len(self._map)


def _source_link(key: str, source_base_url: str) -> str:
    if not source_base_url:
        return key
    return f"[{key}]({source_base_url.rstrip('/')}/browse/{key})"


def render_cross_references(
    relationships: Relationships,
    index: SourceIndex,
    destination_records: Dict[int, DestinationRecord],
    source_base_url: str = "",
) -> str:
    """Render Parent, Subtasks and Related sections, in that order."""
    sections: List[str] = []

    if relationships.parent:
        lines = [PARENT_HEADER, ""]
        parent_id = index.get(relationships.parent)
        if parent_id is not None:
            lines.append(f"- GitLab: #{parent_id}")
        lines.append(f"- JPD: {_source_link(relationships.parent, source_base_url)}")
        sections.append("\n".join(lines))

    if relationships.children:
        lines = [SUBTASKS_HEADER, ""]
        for child in relationships.children:
            child_id = index.get(child)
            link = _source_link(child, source_base_url)
            if child_id is None:
                lines.append(f"- [ ] {link}")
                continue
            child_record = destination_records.get(child_id)
            box = "x" if child_record is not None and child_record.is_closed else " "
            lines.append(f"- [{box}] #{child_id} ({link})")
        sections.append("\n".join(lines))

    if relationships.related:
        lines = [RELATED_HEADER, ""]
        for key in relationships.related:
            related_id = index.get(key)
            link = _source_link(key, source_base_url)
            lines.append(f"- #{related_id} ({link})" if related_id is not None else f"- {link}")
        sections.append("\n".join(lines))

    return "\n\n".join(sections)


def checkbox_pattern(child_id: int) -> "re.Pattern[str]":
    """Task-list line for ``#child_id``; ``#1`` never matches ``#12``."""
    return re.compile(rf"^[ \t]*[-*][ \t]+\[( |x|X)\][ \t]+#{int(child_id)}\b", re.MULTILINE)


def checkbox_state(body: str, child_id: int) -> Optional[bool]:
    """True if checked, False if unchecked, None if the child is not listed."""
    match = checkbox_pattern(child_id).search(body or "")
    if match is None:
        return None
    return match.group(1).lower() == "x"


def ensure_task_list_entry(
    body: str,
    child_id: int,
    child_title: str,
    closed: bool,
    child_source_key: Optional[str] = None,
) -> str:
    """Make sure ``body`` lists ``#child_id`` with the right checkbox.

    Flips an existing checkbox, upgrades a not-yet-mirrored ``[KEY](url)``
    (or bare ``KEY``) line, or appends the entry to the Subtasks section
    (created before the metadata block when missing).
    """
    body = body or ""
    box = "x" if closed else " "

    match = checkbox_pattern(child_id).search(body)
    if match:
        if match.group(1).lower() == box:
            return body
        return body[: match.start(1)] + box + body[match.end(1) :]

    if child_source_key:
        key = re.escape(child_source_key)
        # Linked "[KEY](url)" or bare "KEY" when no source base url is configured
        pending = re.compile(
            rf"^([ \t]*[-*][ \t]+)\[[ xX]\][ \t]+(\[{key}\]\([^)]*\)|{key})[ \t]*$",
            re.MULTILINE,
        )
        pending_match = pending.search(body)
        if pending_match:
            line = f"{pending_match.group(1)}[{box}] #{child_id} ({pending_match.group(2)})"
            return body[: pending_match.start()] + line + body[pending_match.end() :]

    entry = f"- [{box}] #{child_id} {child_title}".rstrip()

    header = _SUBTASKS_HEADER_RE.search(body)
    if header:
        rest_start = header.end()
        next_block = METADATA_BLOCK_RE.search(body, rest_start)
        candidates = [
            pos
            for pos in (body.find("\n## ", rest_start), next_block.start() if next_block else -1)
            if pos != -1
        ]
        section_end = min(candidates) if candidates else len(body)
        section = body[:section_end].rstrip()
        tail = body[section_end:].lstrip("\n")
        result = f"{section}\n{entry}"
        return f"{result}\n\n{tail}" if tail else result

    section = f"{SUBTASKS_HEADER}\n\n{entry}"
    last_block = find_metadata_block(body)
    if last_block is not None:
        meta_pos = last_block.start()
        head = body[:meta_pos].rstrip()
        prefix = f"{head}\n\n" if head else ""
        return f"{prefix}{section}\n\n{body[meta_pos:]}"
    if not body.strip():
        return section
    return f"{body.rstrip()}\n\n{section}"


def parse_parent_reference(body: Optional[str]) -> Optional[int]:
    """Parent issue id from a Parent section or a ``Parent: #n`` line."""
    if not body:
        return None
    match = _PARENT_SECTION_RE.search(body) or _PARENT_LINE_RE.search(body)
    return int(match.group(1)) if match else None


def destination_depth(
    record_id: int,
    records: Dict[int, DestinationRecord],
    child_id: Optional[int] = None,
) -> Tuple[int, bool]:
    """Depth of ``record_id`` in the destination hierarchy (top level is 1).

    Walks ``parent_destination_id`` links; returns ``(depth, cycle_detected)``.
    Passing ``child_id`` also reports a cycle when that record is already an
    ancestor of ``record_id``.
    """
    depth = 0
    visited = set()
    current: Optional[int] = record_id
    while current is not None:
        if current in visited or current == child_id:
            return depth, True
        visited.add(current)
        depth += 1
        record = records.get(current)
        if record is None or record.metadata is None:
            break
        current = record.metadata.parent_destination_id
    return depth, False
