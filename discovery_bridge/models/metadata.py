"""Hidden sync state carried inside destination records"""

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SyncMetadata(BaseModel):
    """Per-record link between a source idea and its destination issue.

    Older blocks written with ``jpd_*`` / ``github`` key names are still
    accepted; blocks are always written back with the current names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source_id: str = Field(validation_alias=AliasChoices("source_id", "jpd_id"))
    source_updated_at: str = Field(
        default="", validation_alias=AliasChoices("source_updated_at", "jpd_updated")
    )
    last_sync_time: str = Field(
        default="", validation_alias=AliasChoices("last_sync_time", "last_sync")
    )
    content_hash: str = Field(
        default="", validation_alias=AliasChoices("content_hash", "sync_hash")
    )
    hierarchy_level: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("hierarchy_level", "hierarchy")
    )
    parent_source_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("parent_source_id", "parent_jpd_id")
    )
    parent_destination_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("parent_destination_id", "parent_github_issue"),
    )
    child_source_ids: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("child_source_ids", "child_jpd_ids"),
    )
    origin_link: str = Field(
        default="", validation_alias=AliasChoices("origin_link", "original_link")
    )


class CommentSyncMarker(BaseModel):
    """Dedup marker appended to every mirrored comment"""

    model_config = ConfigDict(extra="ignore")

    origin_system: str
    origin_comment_id: str
    content_hash: str = ""
    synced_at: str = ""
