"""Comment mirroring between JPD and GitLab.

Every mirrored comment carries a hidden marker naming the original::

    <!-- comment-sync:{"origin_system": "jpd", "origin_comment_id": "10021", ...} -->

A comment that carries a marker is never mirrored again, and a comment whose
id already appears in a marker on the other side is skipped. Edits and
deletions of comments that were already mirrored are not propagated.
"""

import hashlib
import json
import re
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError

from discovery_bridge.models.metadata import CommentSyncMarker
from discovery_bridge.models.records import Comment, System
from discovery_bridge.services.adapters import comment_from_gitlab, comment_from_jira, safe_attr
from discovery_bridge.services.context import SyncContext, utcnow_iso

COMMENT_MARKER_PREFIX = "<!-- comment-sync:"

_MARKER_PRESENT_RE = re.compile(r"<!--\s*comment-sync:")
_MARKER_RE = re.compile(r"<!--\s*comment-sync:\s*(\{.*?\})\s*-->", re.DOTALL)


def comment_hash(comment: Comment) -> str:
    raw = f"{comment.author.name}:{comment.body}:{comment.created_at}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def render_marker(comment: Comment, synced_at: Optional[str] = None) -> str:
    marker = CommentSyncMarker(
        origin_system=comment.origin_system.value,
        origin_comment_id=comment.origin_comment_id,
        content_hash=comment_hash(comment),
        synced_at=synced_at or utcnow_iso(),
    )
    return f"{COMMENT_MARKER_PREFIX}{json.dumps(marker.model_dump(), separators=(',', ':'))} -->"


def has_marker(body: Optional[str]) -> bool:
    return bool(body) and _MARKER_PRESENT_RE.search(body) is not None


def extract_marker(body: Optional[str]) -> Optional[CommentSyncMarker]:
    if not body:
        return None
    match = _MARKER_RE.search(body)
    if match is None:
        return None
    try:
        return CommentSyncMarker.model_validate(json.loads(match.group(1)))
    except (ValueError, ValidationError):
        return None


def normalize(raw: Any, origin_system: System, base_url: str = "") -> Comment:
    """Canonical comment from a raw Jira comment dict or a GitLab note."""
    if origin_system == System.SOURCE:
        return comment_from_jira(raw, base_url)
    return comment_from_gitlab(raw, base_url or None)


def format_comment(comment: Comment, target_system: System, synced_at: Optional[str] = None) -> str:
    """Attributed body for posting ``comment`` into ``target_system``."""
    if target_system == comment.origin_system:
        raise ValueError(f"Comment {comment.id} already lives in {target_system.display_name}")
    author = comment.author.name
    if comment.author.profile_url:
        author = f"[{author}]({comment.author.profile_url})"
    return (
        f"**{author}** commented in {comment.origin_system.display_name}:\n\n"
        f"{comment.body.strip()}\n\n"
        f"{render_marker(comment, synced_at)}"
    )


def should_sync(comment: Comment, mirrored: Iterable[Comment]) -> bool:
    if has_marker(comment.body):
        return False
    for other in mirrored:
        marker = extract_marker(other.body)
        if (
            marker is not None
            and marker.origin_system == comment.origin_system.value
            and marker.origin_comment_id == comment.origin_comment_id
        ):
            return False
    return True


class CommentSyncManager:
    """Mirrors comments of one linked record pair in both directions"""

    def __init__(
        self,
        source_client,
        destination_client,
        ctx: SyncContext,
        source_base_url: str = "",
        destination_base_url: str = "",
    ):
        self.source = source_client
        self.destination = destination_client
        self.ctx = ctx
        self.source_base_url = source_base_url
        self.destination_base_url = destination_base_url

    def _source_comments(self, key: str) -> List[Comment]:
        return [normalize(raw, System.SOURCE, self.source_base_url) for raw in self.source.get_comments(key)]

    def _destination_comments(self, record_id: int) -> List[Comment]:
        return [
            normalize(note, System.DESTINATION, self.destination_base_url)
            for note in self.destination.get_comments(record_id)
            if not safe_attr(note, "system", False)
        ]

    def sync_pair(
        self,
        source_key: str,
        destination_id: int,
        to_destination: bool = True,
        to_source: bool = True,
    ) -> int:
        """Mirror missing comments; returns how many were (or would be) posted."""
        source_comments = self._source_comments(source_key)
        destination_comments = self._destination_comments(destination_id)
        mirrored = 0

        if to_destination:
            for comment in source_comments:
                if not should_sync(comment, destination_comments):
                    continue
                if self.ctx.dry_run:
                    self.ctx.log.info(f"[dry run] would mirror comment {comment.id} from {source_key} to #{destination_id}")
                else:
                    self.destination.add_comment(destination_id, format_comment(comment, System.DESTINATION))
                mirrored += 1

        if to_source:
            for comment in destination_comments:
                if not should_sync(comment, source_comments):
                    continue
                if self.ctx.dry_run:
                    self.ctx.log.info(f"[dry run] would mirror comment {comment.id} from #{destination_id} to {source_key}")
                else:
                    self.source.add_comment(source_key, format_comment(comment, System.SOURCE))
                mirrored += 1

        self.ctx.summary.comments_mirrored += mirrored
        return mirrored
