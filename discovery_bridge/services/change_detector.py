"""Content fingerprints and the write-or-skip decision"""

import hashlib
import json
from typing import Dict, Optional

from discovery_bridge.models.metadata import SyncMetadata
from discovery_bridge.models.records import HierarchyLevel, Relationships, SourceRecord
from discovery_bridge.services.hierarchy import SourceIndex, checkbox_state


def fingerprint(record: SourceRecord, relationships: Relationships, level: HierarchyLevel) -> str:
    """sha256 over a canonical projection of the record.

    Child identity is part of the projection, child open/closed state is not
    (see ``children_out_of_date``).
    """
    projection = {
        "key": record.key,
        "updated": record.updated_at,
        "title": record.title,
        "status": record.status,
        "parent": relationships.parent,
        "children": list(relationships.children),
        "hierarchy": level.value,
    }
    canonical = json.dumps(projection, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def children_out_of_date(
    relationships: Relationships,
    destination_body: str,
    index: SourceIndex,
    child_closed: Dict[int, bool],
) -> bool:
    """True when a mirrored child's checkbox disagrees with the child's state."""
    for child in relationships.children:
        child_id = index.get(child)
        if child_id is None or child_id not in child_closed:
            continue
        rendered = checkbox_state(destination_body, child_id)
        if rendered is None or rendered != child_closed[child_id]:
            return True
    return False


def needs_write(
    existing: Optional[SyncMetadata],
    new_fingerprint: str,
    relationships: Relationships,
    destination_body: str = "",
    index: Optional[SourceIndex] = None,
    child_closed: Optional[Dict[int, bool]] = None,
) -> bool:
    if existing is None or existing.content_hash != new_fingerprint:
        return True
    if not relationships.children or index is None:
        return False
    return children_out_of_date(relationships, destination_body, index, child_closed or {})
