"""Sync rules loaded from YAML (``sync.yaml`` by default).

Example::

    sync:
      direction: bidirectional
      jql: project = MTT ORDER BY created ASC
    statuses:
      Backlog: {destination_state: open}
      Ready: {destination_state: open, destination_label: "status::ready"}
      Done: {destination_state: closed}
      Archived: {sync: false}
    hierarchy:
      epic_statuses: [Epic Design]
    mappings:
      - target: labels
        template: "team::{{ fields.customfield_10001.value | slugify }}"

Strings may reference environment variables as ``${VAR}`` or
``${VAR:-default}``.
"""

import enum
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from discovery_bridge.models.records import DestinationState, HierarchyLevel
from discovery_bridge.services.errors import SchemaValidationError

logger = logging.getLogger(__name__)


class SyncDirection(str, enum.Enum):
    SOURCE_TO_DESTINATION = "jpd-to-gitlab"
    DESTINATION_TO_SOURCE = "gitlab-to-jpd"
    BIDIRECTIONAL = "bidirectional"

    @property
    def pushes_to_destination(self) -> bool:
        return self in (SyncDirection.SOURCE_TO_DESTINATION, SyncDirection.BIDIRECTIONAL)

    @property
    def pulls_from_destination(self) -> bool:
        return self in (SyncDirection.DESTINATION_TO_SOURCE, SyncDirection.BIDIRECTIONAL)


class SyncSection(BaseModel):
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    # Empty means "project = <JPD_PROJECT_KEY>"
    jql: str = ""
    comments: bool = True
    validate_fields: bool = True
    max_results: int = Field(default=0, ge=0)

    model_config = {"frozen": True}


class MappingTarget(str, enum.Enum):
    TITLE = "title"
    BODY = "body"
    LABELS = "labels"


class FieldMapping(BaseModel):
    """How one destination attribute is produced from a source record.

    ``source`` is a dotted path into the record context (``title``,
    ``fields.customfield_10001.value``); ``template`` is a sandboxed Jinja2
    template rendered against the same context. ``values`` translates the
    resolved value through a lookup table.
    """

    target: MappingTarget
    source: Optional[str] = None
    template: Optional[str] = None
    values: Dict[str, str] = Field(default_factory=dict)
    default: Optional[str] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _source_or_template(self):
        if not self.source and not self.template:
            raise ValueError(f"mapping for '{self.target.value}' needs 'source' or 'template'")
        return self


class StatusRule(BaseModel):
    destination_state: Optional[DestinationState] = None
    # Secondary categorical attribute on the destination side (a scoped label)
    destination_label: Optional[str] = None
    sync: bool = True

    model_config = {"frozen": True}


class HierarchyConfig(BaseModel):
    enabled: bool = True
    subtask_link_type: str = "Subtask"
    epic_statuses: List[str] = Field(default_factory=lambda: ["Epic Design"])
    story_statuses: List[str] = Field(
        default_factory=lambda: ["Backlog", "Ready", "In Progress", "In Review"]
    )
    task_statuses: List[str] = Field(default_factory=list)
    # None syncs every level
    sync_levels: Optional[List[HierarchyLevel]] = None
    # GitLab nests tasks under issues under epics; deeper chains are flattened
    max_depth: int = Field(default=8, ge=1)

    model_config = {"frozen": True}


class CreationConfig(BaseModel):
    """Creating JPD ideas from GitLab issues that carry no sync metadata"""

    enabled: bool = False
    issue_type: str = "Idea"
    default_status: Optional[str] = None
    category_field_id: Optional[str] = None
    label_to_category: Dict[str, str] = Field(default_factory=dict)
    default_category: Optional[str] = None
    priority_field_id: Optional[str] = None
    label_to_priority: Dict[str, str] = Field(default_factory=dict)
    default_priority: Optional[str] = None
    link_type: str = "Relates"

    model_config = {"frozen": True}


class FieldRequirement(BaseModel):
    id: str
    name: Optional[str] = None
    type: Optional[str] = None
    required: bool = True

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    sync: SyncSection = Field(default_factory=SyncSection)
    mappings: List[FieldMapping] = Field(default_factory=list)
    statuses: Dict[str, StatusRule] = Field(default_factory=dict)
    hierarchy: HierarchyConfig = Field(default_factory=HierarchyConfig)
    creation: CreationConfig = Field(default_factory=CreationConfig)
    fields: List[FieldRequirement] = Field(default_factory=list)

    model_config = {"frozen": True}

    def status_rule(self, status: str) -> Optional[StatusRule]:
        return self.statuses.get(status)

    def query_for(self, project_key: str) -> str:
        return self.sync.jql or f"project = {project_key}"


# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) if match.group(2) is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


def parse_sync_config(raw: Any) -> SyncConfig:
    """Validate an already-parsed YAML document."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise SchemaValidationError("Sync config must be a mapping at the top level")
    try:
        return SyncConfig.model_validate(_interpolate_recursive(raw))
    except ValidationError as e:
        problems = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise SchemaValidationError("Invalid sync config", problems) from e


def load_sync_config(path: str) -> SyncConfig:
    """Load and validate the sync rules file; a missing file yields defaults."""
    config_path = Path(path).expanduser()
    if not config_path.exists():
        logger.warning(f"Sync config {config_path} not found; using defaults")
        return SyncConfig()
    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as e:
        raise SchemaValidationError(f"Cannot parse {config_path}: {e}") from e
    config = parse_sync_config(raw)
    logger.info(f"Loaded sync config from {config_path}")
    return config
