"""Record, metadata and report models"""

from discovery_bridge.models.metadata import CommentSyncMarker, SyncMetadata
from discovery_bridge.models.records import (
    Author,
    Comment,
    DestinationRecord,
    DestinationState,
    HierarchyLevel,
    Record,
    RecordLink,
    Relationships,
    SourceRecord,
    System,
)
from discovery_bridge.models.report import RecordError, RunSummary, StatusTransition

__all__ = [
    "Author",
    "Comment",
    "CommentSyncMarker",
    "DestinationRecord",
    "DestinationState",
    "HierarchyLevel",
    "Record",
    "RecordError",
    "RecordLink",
    "Relationships",
    "RunSummary",
    "SourceRecord",
    "StatusTransition",
    "SyncMetadata",
    "System",
]
