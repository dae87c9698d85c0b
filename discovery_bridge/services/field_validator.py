"""Pre-flight check that the JPD project exposes the fields the mappings need.

A sample issue is fetched from the project and every configured field is
looked up on it. Missing required fields and type mismatches abort the run
before anything is written.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from discovery_bridge.services.errors import SchemaValidationError
from discovery_bridge.sync_config import FieldRequirement

logger = logging.getLogger(__name__)

_MISSING = object()

# actual type -> expected types it satisfies
TYPE_COMPATIBILITY: Dict[str, List[str]] = {
    "string": ["text", "url", "date", "datetime"],
    "text": ["string"],
    "array": ["multiselect"],
    "select": ["object"],
    "multiselect": ["array"],
    "object": ["select", "user"],
    "user": ["object"],
    "number": [],
    "boolean": [],
}


def detect_field_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        if "value" in value:
            return "select"
        if "accountId" in value or ("name" in value and "key" in value):
            return "user"
    return "object"


def is_type_compatible(actual: str, expected: str) -> bool:
    return actual == expected or expected in TYPE_COMPATIBILITY.get(actual, [])


@dataclass
class FieldValidationResult:
    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class FieldValidator:
    def __init__(self, source_client, requirements: List[FieldRequirement]):
        self.source = source_client
        self.requirements = list(requirements)

    def validate(self, project_key: str) -> FieldValidationResult:
        result = FieldValidationResult()
        if not self.requirements:
            return result

        sample: Optional[Dict[str, Any]] = self.source.get_sample_record(project_key)
        if sample is None:
            result.valid = False
            result.errors.append(
                f"No issues found in project {project_key}; create at least one idea to validate fields"
            )
            return result

        fields = sample.get("fields") or {}
        for requirement in self.requirements:
            label = f"{requirement.name or requirement.id} ({requirement.id})"
            value = fields.get(requirement.id, _MISSING)
            if value is _MISSING:
                if requirement.required:
                    result.valid = False
                    result.errors.append(f"Required field {label} not found in project {project_key}")
                continue
            if value is None:
                if not requirement.required:
                    result.warnings.append(f"Optional field {label} is empty on {sample.get('key')}")
                continue
            if requirement.type is None:
                continue
            actual = detect_field_type(value)
            if not is_type_compatible(actual, requirement.type):
                result.valid = False
                result.errors.append(f"Field {label} has type '{actual}' but '{requirement.type}' is expected")

        for warning in result.warnings:
            logger.warning(warning)
        return result

    def ensure_valid(self, project_key: str) -> FieldValidationResult:
        result = self.validate(project_key)
        if not result.valid:
            raise SchemaValidationError(f"JPD project {project_key} is missing required fields", result.errors)
        logger.info(f"Validated {len(self.requirements)} JPD fields for project {project_key}")
        return result
