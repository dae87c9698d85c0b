"""Jira Product Discovery (Jira Cloud REST API v3) client.

Synchronous httpx client with Basic auth (email + API token). Issue search
uses ``/rest/api/3/search/jql`` with ``nextPageToken`` pagination; comments
use offset pagination. Raw JSON is returned; conversion to canonical records
happens in ``services/adapters.py``.

Reference: https://developer.atlassian.com/cloud/jira/platform/rest/v3/intro/
"""

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from discovery_bridge.services.adf import markdown_to_adf
from discovery_bridge.services.errors import (
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    SyncError,
    TransientError,
    TransitionNotFoundError,
)
from discovery_bridge.services.retry import DEFAULT_MAX_ATTEMPTS, with_retries
from discovery_bridge.services.status import find_transition

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 50
COMMENT_PAGE_SIZE = 50


class JpdClientError(SyncError):
    """Jira request failed with an unexpected HTTP status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class JpdClient:
    """Jira Cloud REST client for one JPD project.

    Example:
        >>> client = JpdClient("https://acme.atlassian.net", "me@acme.io", "token")
        >>> issues = client.search("project = MTT")
    """

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts

        credentials = f"{email}:{api_token}"
        encoded = base64.b64encode(credentials.encode()).decode()

        timeout_config = httpx.Timeout(connect=5.0, read=30.0, write=10.0, pool=5.0)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20, keepalive_expiry=10.0)

        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout_config,
            limits=limits,
            transport=transport,
            headers={
                "Authorization": f"Basic {encoded}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise TransientError(f"{method} {path}: {e}") from e

        status = response.status_code
        if status < 400:
            return response
        detail = response.text[:300]
        if status in (401, 403):
            raise AuthenticationError(f"{method} {path}: HTTP {status}")
        if status in (404, 410):
            raise NotFoundError(f"{method} {path}: HTTP {status}")
        if status == 429:
            raise RateLimitError(f"{method} {path}: rate limited", retry_after=_retry_after(response))
        if status >= 500:
            raise TransientError(f"{method} {path}: HTTP {status}")
        raise JpdClientError(f"{method} {path}: HTTP {status}: {detail}", status_code=status)

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        return with_retries(
            lambda: self._send(method, path, **kwargs),
            max_attempts=self.max_attempts,
            description=f"JPD {method} {path}",
        )

    def search(self, jql: str, fields: Optional[List[str]] = None, limit: int = 0) -> List[Dict[str, Any]]:
        """Search issues with JQL; ``limit`` of 0 fetches every page."""
        all_issues: List[Dict[str, Any]] = []
        next_token: Optional[str] = None
        while True:
            page_size = SEARCH_PAGE_SIZE if not limit else min(SEARCH_PAGE_SIZE, limit - len(all_issues))
            body: Dict[str, Any] = {
                "jql": jql,
                "maxResults": page_size,
                "fields": fields or ["*all"],
            }
            if next_token:
                body["nextPageToken"] = next_token
            data = self._request("POST", "/rest/api/3/search/jql", json=body).json()

            issues = data.get("issues", [])
            all_issues.extend(issues)
            next_token = data.get("nextPageToken")
            logger.debug(f"JPD search page: {len(issues)} issues ({len(all_issues)} so far)")

            if data.get("isLast", True) or not next_token or not issues:
                break
            if limit and len(all_issues) >= limit:
                break

        if limit:
            all_issues = all_issues[:limit]
        logger.info(f"JPD search returned {len(all_issues)} issues for: {jql}")
        return all_issues

    def get_record(self, key: str) -> Optional[Dict[str, Any]]:
        """Fetch one issue; None when it no longer exists"""
        try:
            return self._request("GET", f"/rest/api/3/issue/{key}", params={"fields": "*all"}).json()
        except NotFoundError:
            return None

    def get_comments(self, key: str) -> List[Dict[str, Any]]:
        all_comments: List[Dict[str, Any]] = []
        start_at = 0
        total: Optional[int] = None
        while total is None or start_at < total:
            data = self._request(
                "GET",
                f"/rest/api/3/issue/{key}/comment",
                params={"startAt": start_at, "maxResults": COMMENT_PAGE_SIZE, "orderBy": "created"},
            ).json()
            comments = data.get("comments", [])
            all_comments.extend(comments)
            total = data.get("total", 0)
            start_at += len(comments)
            if not comments:
                break
        return all_comments

    def add_comment(self, key: str, markdown_body: str) -> Dict[str, Any]:
        data = self._request(
            "POST", f"/rest/api/3/issue/{key}/comment", json={"body": markdown_to_adf(markdown_body)}
        ).json()
        logger.info(f"Created comment on {key}")
        return data

    def list_transitions(self, key: str) -> List[Dict[str, Any]]:
        data = self._request("GET", f"/rest/api/3/issue/{key}/transitions").json()
        return data.get("transitions", [])

    def transition(self, key: str, transition_id: str) -> None:
        self._request("POST", f"/rest/api/3/issue/{key}/transitions", json={"transition": {"id": str(transition_id)}})

    def transition_to_status(self, key: str, status_name: str) -> None:
        """Move ``key`` to ``status_name`` through a legal workflow transition"""
        transitions = self.list_transitions(key)
        match = find_transition(transitions, status_name)
        if match is None:
            available = [(t.get("to") or {}).get("name", "") for t in transitions]
            raise TransitionNotFoundError(key, status_name, available)
        self.transition(key, match["id"])

    def create_link(self, inward_key: str, outward_key: str, link_type: str) -> None:
        self._request(
            "POST",
            "/rest/api/3/issueLink",
            json={
                "type": {"name": link_type},
                "inwardIssue": {"key": inward_key},
                "outwardIssue": {"key": outward_key},
            },
        )
        logger.info(f"Linked {inward_key} -> {outward_key} ({link_type})")

    def create_record(self, fields: Dict[str, Any]) -> str:
        """Create an issue from a ``fields`` payload; returns the new key"""
        data = self._request("POST", "/rest/api/3/issue", json={"fields": fields}).json()
        key = data["key"]
        logger.info(f"Created JPD issue {key}")
        return key

    def get_sample_record(self, project_key: str) -> Optional[Dict[str, Any]]:
        issues = self.search(f"project = {project_key}", limit=1)
        return issues[0] if issues else None
