"""Sync metadata codec and persistence.

The only persisted sync state is a hidden HTML comment at the end of each
destination issue description::

    <!-- jpd-sync-metadata
    {
      "source_id": "MTT-12",
      ...
    }
    -->

``MetadataStore`` hides where that state lives so the orchestrator can be run
against an in-memory map in tests and against issue descriptions in production.
"""

import abc
import json
import logging
import re
from typing import Dict, Optional

from pydantic import ValidationError

from discovery_bridge.models.metadata import SyncMetadata
from discovery_bridge.models.records import DestinationRecord

logger = logging.getLogger(__name__)

METADATA_START = "<!-- jpd-sync-metadata"
METADATA_END = "-->"

METADATA_BLOCK_RE = re.compile(r"<!--\s*jpd-sync-metadata([\s\S]*?)-->")


def find_metadata_block(body: Optional[str], pos: int = 0) -> Optional["re.Match[str]"]:
    """Last metadata block in ``body`` at or after ``pos``, or None."""
    last = None
    for last in METADATA_BLOCK_RE.finditer(body or "", pos):
        pass
    return last


def _parse_block(block: "re.Match[str]") -> Optional[SyncMetadata]:
    try:
        return SyncMetadata.model_validate(json.loads(block.group(1).strip()))
    except (ValueError, ValidationError) as e:
        logger.debug(f"Ignoring unreadable sync metadata block: {e}")
        return None


def render_metadata_block(metadata: SyncMetadata) -> str:
    payload = json.dumps(metadata.model_dump(mode="json"), indent=2, ensure_ascii=False)
    return f"{METADATA_START}\n{payload}\n{METADATA_END}"


def read_metadata(body: Optional[str]) -> Optional[SyncMetadata]:
    """Return the metadata embedded in ``body``, or None when absent or corrupt."""
    if not body:
        return None
    block = find_metadata_block(body)
    if block is None:
        return None
    return _parse_block(block)


def write_metadata(body: Optional[str], metadata: SyncMetadata) -> str:
    """Embed ``metadata`` in ``body``, replacing any existing block in place."""
    body = body or ""
    block = render_metadata_block(metadata)
    existing = find_metadata_block(body)
    if existing is None:
        if not body.strip():
            return block
        return f"{body}\n\n{block}"

    if _parse_block(existing) == metadata:
        return body
    head = METADATA_BLOCK_RE.sub("", body[: existing.start()])
    return head + block + body[existing.end() :]


def strip_metadata(body: Optional[str]) -> str:
    """Remove every metadata block from ``body``."""
    if not body:
        return ""
    return METADATA_BLOCK_RE.sub("", body).strip()


class MetadataStore(abc.ABC):
    """Read / replace / remove contract for per-record sync metadata"""

    @abc.abstractmethod
    def load(self, record: DestinationRecord) -> Optional[SyncMetadata]:
        ...

    @abc.abstractmethod
    def prepare_body(self, body: str, metadata: SyncMetadata) -> str:
        """Return the body to send with the next write of this record."""

    @abc.abstractmethod
    def commit(self, record_id: int, metadata: SyncMetadata) -> None:
        """Called once the destination write carrying ``metadata`` succeeded."""

    @abc.abstractmethod
    def discard(self, record: DestinationRecord) -> None:
        """Remove the metadata linking ``record`` to its source record."""


class BodyMetadataStore(MetadataStore):
    """Metadata embedded in the destination issue description"""

    def __init__(self, destination_client):
        self.destination = destination_client

    def load(self, record: DestinationRecord) -> Optional[SyncMetadata]:
        return read_metadata(record.body)

    def prepare_body(self, body: str, metadata: SyncMetadata) -> str:
        return write_metadata(strip_metadata(body), metadata)

    def commit(self, record_id: int, metadata: SyncMetadata) -> None:
        # Nothing to do: the metadata travelled inside the description.
        return None

    def discard(self, record: DestinationRecord) -> None:
        cleaned = strip_metadata(record.body)
        self.destination.update_record(record.id, {"description": cleaned})
        record.body = cleaned
        record.metadata = None


class InMemoryMetadataStore(MetadataStore):
    """Metadata kept in a dict keyed by destination record id"""

    def __init__(self, initial: Optional[Dict[int, SyncMetadata]] = None):
        self.records: Dict[int, SyncMetadata] = dict(initial or {})

    def load(self, record: DestinationRecord) -> Optional[SyncMetadata]:
        return self.records.get(record.id)

    def prepare_body(self, body: str, metadata: SyncMetadata) -> str:
        return body

    def commit(self, record_id: int, metadata: SyncMetadata) -> None:
        self.records[record_id] = metadata

    def discard(self, record: DestinationRecord) -> None:
        self.records.pop(record.id, None)
        record.metadata = None
