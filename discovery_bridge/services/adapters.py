"""Conversion of raw Jira / GitLab payloads into canonical records"""

from typing import Any, Dict, Optional

from discovery_bridge.models.records import (
    Author,
    Comment,
    DestinationRecord,
    DestinationState,
    RecordLink,
    SourceRecord,
    System,
)
from discovery_bridge.services.adf import adf_to_markdown


def safe_attr(obj: Any, name: str, default: Any = None) -> Any:
    """Read an attribute from a python-gitlab object or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    try:
        return getattr(obj, name)
    except AttributeError:
        return default


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return adf_to_markdown(value)
    return str(value)


def source_record_from_jira(issue: Dict[str, Any], base_url: str = "") -> SourceRecord:
    fields = issue.get("fields") or {}
    key = issue.get("key", "")

    links = []
    for link in fields.get("issuelinks") or []:
        type_name = (link.get("type") or {}).get("name", "")
        if link.get("outwardIssue"):
            links.append(RecordLink(type_name=type_name, direction="outward", key=link["outwardIssue"]["key"]))
        if link.get("inwardIssue"):
            links.append(RecordLink(type_name=type_name, direction="inward", key=link["inwardIssue"]["key"]))

    return SourceRecord(
        key=key,
        title=fields.get("summary") or "",
        status=(fields.get("status") or {}).get("name", ""),
        updated_at=fields.get("updated") or "",
        url=f"{base_url.rstrip('/')}/browse/{key}" if base_url else "",
        description=_text(fields.get("description")),
        parent_key=(fields.get("parent") or {}).get("key"),
        subtask_keys=[s["key"] for s in fields.get("subtasks") or [] if s.get("key")],
        links=links,
        fields=fields,
    )


def destination_record_from_gitlab(issue: Any) -> DestinationRecord:
    state = safe_attr(issue, "state", "opened")
    labels = safe_attr(issue, "labels", None) or []
    return DestinationRecord(
        id=int(safe_attr(issue, "iid")),
        title=safe_attr(issue, "title", "") or "",
        body=safe_attr(issue, "description", "") or "",
        state=DestinationState.CLOSED if state == "closed" else DestinationState.OPEN,
        labels=list(labels),
        url=safe_attr(issue, "web_url", "") or "",
    )


def comment_from_jira(raw: Dict[str, Any], base_url: str = "") -> Comment:
    author = raw.get("author") or {}
    account_id = author.get("accountId")
    profile_url = f"{base_url.rstrip('/')}/people/{account_id}" if base_url and account_id else ""
    comment_id = str(raw.get("id", ""))
    return Comment(
        id=comment_id,
        author=Author(name=author.get("displayName") or "Unknown", profile_url=profile_url),
        body=_text(raw.get("body")),
        created_at=raw.get("created") or "",
        origin_system=System.SOURCE,
        origin_comment_id=comment_id,
    )


def comment_from_gitlab(note: Any, gitlab_url: Optional[str] = None) -> Comment:
    author = safe_attr(note, "author", None) or {}
    username = author.get("username") or ""
    profile_url = author.get("web_url") or (
        f"{gitlab_url.rstrip('/')}/{username}" if gitlab_url and username else ""
    )
    comment_id = str(safe_attr(note, "id", ""))
    return Comment(
        id=comment_id,
        author=Author(name=author.get("name") or username or "Unknown", profile_url=profile_url),
        body=safe_attr(note, "body", "") or "",
        created_at=safe_attr(note, "created_at", "") or "",
        origin_system=System.DESTINATION,
        origin_comment_id=comment_id,
    )
