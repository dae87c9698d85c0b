"""GitLab API client wrapper (destination side)"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import gitlab

from discovery_bridge.models.records import DestinationRecord, DestinationState
from discovery_bridge.services.adapters import destination_record_from_gitlab
from discovery_bridge.services.hierarchy import ensure_task_list_entry, parse_parent_reference
from discovery_bridge.services.metadata import read_metadata
from discovery_bridge.services.retry import DEFAULT_MAX_ATTEMPTS, with_retries

logger = logging.getLogger(__name__)


class GitLabClient:
    """Wrapper for GitLab API operations on a single project"""

    def __init__(self, url: str, access_token: str, project_id: str, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        """Initialize GitLab client"""
        self.url = url.rstrip("/")
        self.project_id = project_id
        self.max_attempts = max_attempts
        self._project = None
        self.gl = gitlab.Gitlab(url, private_token=access_token)
        self.gl.auth()

    def _with_retries(self, fn, description: str = "GitLab request"):
        return with_retries(fn, max_attempts=self.max_attempts, description=description)

    @staticmethod
    def _normalize_issue_payload(issue_data: Dict[str, Any], *, for_update: bool) -> Dict[str, Any]:
        """Normalize payload fields for GitLab API quirks."""
        data = dict(issue_data)

        # GitLab API expects comma-separated string for `labels`. Some servers ignore empty lists.
        if "labels" in data:
            labels = data.get("labels")
            if not labels:
                if for_update:
                    data["labels"] = ""
                else:
                    data.pop("labels", None)
            elif isinstance(labels, list):
                data["labels"] = ",".join(labels)

        # Open/closed is not an attribute on create and a state_event on update.
        data.pop("state", None)
        return data

    @staticmethod
    def _state_event(current: Optional[str], wanted: Optional[DestinationState]) -> Optional[str]:
        if wanted is None:
            return None
        if wanted == DestinationState.CLOSED and current != "closed":
            return "close"
        if wanted == DestinationState.OPEN and current == "closed":
            return "reopen"
        return None

    def get_project(self):
        """Get the configured project (cached)"""
        if self._project is None:
            try:
                self._project = self._with_retries(lambda: self.gl.projects.get(self.project_id))
            except gitlab.exceptions.GitlabGetError as e:
                logger.error(f"Failed to get project {self.project_id}: {e}")
                raise
        return self._project

    def list_issues(self) -> List[Any]:
        """Get all issues (open and closed) from the project"""
        try:
            project = self.get_project()
            # GitLab defaults to state=opened; closed issues matter for checkbox and status sync.
            params = {
                "order_by": "created_at",
                "sort": "asc",
                "state": "all",
                "per_page": 100,
            }
            return self._with_retries(lambda: project.issues.list(get_all=True, **params))
        except Exception as e:
            logger.error(f"Failed to get issues for project {self.project_id}: {e}")
            raise

    def list_linked_records(self) -> List[DestinationRecord]:
        """All issues as canonical records, with embedded metadata parsed"""
        records = []
        for issue in self.list_issues():
            record = destination_record_from_gitlab(issue)
            record.metadata = read_metadata(record.body)
            records.append(record)
        return records

    def get_issue(self, issue_iid: int) -> Any:
        """Get a specific issue by IID"""
        try:
            project = self.get_project()
            return self._with_retries(lambda: project.issues.get(issue_iid))
        except gitlab.exceptions.GitlabGetError as e:
            logger.error(f"Failed to get issue {issue_iid} from project {self.project_id}: {e}")
            raise

    def get_issue_optional(self, issue_iid: int) -> Tuple[Optional[Any], Optional[int]]:
        """Get issue by IID, returning (issue, response_code_if_error)."""
        try:
            return self.get_issue(issue_iid), None
        except gitlab.exceptions.GitlabGetError as e:
            return None, getattr(e, "response_code", None)

    def get_record(self, issue_iid: int) -> Optional[DestinationRecord]:
        issue, rc = self.get_issue_optional(issue_iid)
        if issue is None:
            if rc == 404:
                return None
            raise gitlab.exceptions.GitlabGetError("Failed to get issue", response_code=rc)
        record = destination_record_from_gitlab(issue)
        record.metadata = read_metadata(record.body)
        return record

    def create_record(self, issue_data: Dict[str, Any]) -> DestinationRecord:
        """Create a new issue; a closed ``state`` is applied right after creation"""
        try:
            project = self.get_project()
            payload = self._normalize_issue_payload(issue_data, for_update=False)
            issue = self._with_retries(lambda: project.issues.create(payload))
            logger.info(f"Created issue #{issue.iid} in project {self.project_id}")
            event = self._state_event(getattr(issue, "state", "opened"), issue_data.get("state"))
            if event:
                issue.state_event = event
                self._with_retries(lambda: issue.save())
                issue.state = "closed" if event == "close" else "opened"
            return destination_record_from_gitlab(issue)
        except Exception as e:
            logger.error(f"Failed to create issue in project {self.project_id}: {e}")
            raise

    def update_record(self, issue_iid: int, issue_data: Dict[str, Any]) -> DestinationRecord:
        """Update an existing issue"""
        try:
            project = self.get_project()
            issue = self._with_retries(lambda: project.issues.get(issue_iid))
            event = self._state_event(getattr(issue, "state", None), issue_data.get("state"))
            payload = self._normalize_issue_payload(issue_data, for_update=True)
            if event:
                payload["state_event"] = event
            for key, value in payload.items():
                setattr(issue, key, value)
            self._with_retries(lambda: issue.save())
            if event:
                issue.state = "closed" if event == "close" else "opened"
            logger.info(f"Updated issue #{issue_iid} in project {self.project_id}")
            return destination_record_from_gitlab(issue)
        except Exception as e:
            logger.error(f"Failed to update issue {issue_iid} in project {self.project_id}: {e}")
            raise

    def get_comments(self, issue_iid: int) -> List[Any]:
        """Get all notes (comments) for an issue"""
        try:
            issue = self.get_issue(issue_iid)
            return self._with_retries(
                lambda: issue.notes.list(get_all=True, per_page=100, order_by="created_at", sort="asc")
            )
        except Exception as e:
            logger.error(f"Failed to get notes for issue {issue_iid}: {e}")
            raise

    def add_comment(self, issue_iid: int, body: str) -> Any:
        """Create a note (comment) on an issue"""
        try:
            issue = self.get_issue(issue_iid)
            note = self._with_retries(lambda: issue.notes.create({"body": body}))
            logger.info(f"Created note on issue #{issue_iid}")
            return note
        except Exception as e:
            logger.error(f"Failed to create note on issue {issue_iid}: {e}")
            raise

    def get_parent_link(self, issue_iid: int) -> Optional[int]:
        """Parent issue IID from sync metadata or the rendered Parent section"""
        issue = self.get_issue(issue_iid)
        body = getattr(issue, "description", None) or ""
        metadata = read_metadata(body)
        if metadata is not None and metadata.parent_destination_id is not None:
            return metadata.parent_destination_id
        return parse_parent_reference(body)

    def ensure_child_in_parent_task_list(
        self,
        parent_iid: int,
        child_iid: int,
        child_title: str,
        closed: bool = False,
        child_source_key: Optional[str] = None,
    ) -> bool:
        """List the child in the parent's Subtasks section; returns True if the parent changed"""
        issue = self.get_issue(parent_iid)
        body = getattr(issue, "description", None) or ""
        new_body = ensure_task_list_entry(body, child_iid, child_title, closed, child_source_key)
        if new_body == body:
            return False
        issue.description = new_body
        self._with_retries(lambda: issue.save())
        logger.info(f"Linked #{child_iid} in task list of #{parent_iid}")
        return True
