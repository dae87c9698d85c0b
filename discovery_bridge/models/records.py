"""Canonical record types shared by every reconciliation component.

Raw payloads from Jira Product Discovery (source) and GitLab (destination) are
converted into these types at the edge (see ``services/adapters.py``); nothing
past that point looks at vendor JSON or python-gitlab objects.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from discovery_bridge.models.metadata import SyncMetadata


class System(str, enum.Enum):
    """The two systems being reconciled"""

    SOURCE = "jpd"
    DESTINATION = "gitlab"

    @property
    def display_name(self) -> str:
        return "JPD" if self is System.SOURCE else "GitLab"


class DestinationState(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class HierarchyLevel(str, enum.Enum):
    """Work-item level derived from the source status"""

    EPIC = "epic"
    STORY = "story"
    TASK = "task"
    UNCLASSIFIED = "unclassified"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_LEVEL_RANK = {
    HierarchyLevel.EPIC: 0,
    HierarchyLevel.STORY: 1,
    HierarchyLevel.TASK: 2,
    HierarchyLevel.UNCLASSIFIED: 3,
}


@dataclass(frozen=True)
class RecordLink:
    """A typed link between two source records.

    ``direction`` is ``outward`` when the linked record is on the outward side
    of the link (for a ``Subtask`` link that makes it the parent), ``inward``
    otherwise.
    """

    type_name: str
    direction: str
    key: str


@dataclass
class SourceRecord:
    key: str
    title: str
    status: str
    updated_at: str
    url: str = ""
    description: str = ""
    parent_key: Optional[str] = None
    subtask_keys: List[str] = field(default_factory=list)
    links: List[RecordLink] = field(default_factory=list)
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DestinationRecord:
    id: int
    title: str
    body: str = ""
    state: DestinationState = DestinationState.OPEN
    labels: List[str] = field(default_factory=list)
    url: str = ""
    metadata: Optional[SyncMetadata] = None

    @property
    def is_closed(self) -> bool:
        return self.state == DestinationState.CLOSED


Record = Union[SourceRecord, DestinationRecord]


@dataclass
class Relationships:
    """Parent, children and related keys of one source record for this run"""

    parent: Optional[str] = None
    children: List[str] = field(default_factory=list)
    related: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return self.parent is None and not self.children and not self.related


@dataclass(frozen=True)
class Author:
    name: str
    profile_url: str = ""


@dataclass
class Comment:
    id: str
    author: Author
    body: str
    created_at: str
    origin_system: System
    origin_comment_id: str
