"""Declarative mapping of source fields onto destination title, body and labels"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from jinja2 import StrictUndefined, TemplateError, TemplateSyntaxError
from jinja2.sandbox import SandboxedEnvironment

from discovery_bridge.models.records import HierarchyLevel, SourceRecord
from discovery_bridge.services.errors import SchemaValidationError
from discovery_bridge.sync_config import FieldMapping, MappingTarget


def slugify(value: Any) -> str:
    text = re.sub(r"[^a-z0-9]+", "-", str(value or "").lower())
    return text.strip("-")


def resolve_path(context: Dict[str, Any], path: str) -> Any:
    """Walk ``a.b.0.c`` through nested dicts and lists; None when missing."""
    current: Any = context
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
        if current is None:
            return None
    return current


@dataclass
class MappedFields:
    title: str
    body: str
    labels: List[str] = field(default_factory=list)


class FieldMapper:
    def __init__(self, mappings: Optional[List[FieldMapping]] = None):
        self.mappings = list(mappings or [])
        self.env = SandboxedEnvironment(undefined=StrictUndefined, autoescape=False)
        self.env.filters["slugify"] = slugify
        self._templates = {}
        problems = []
        for idx, mapping in enumerate(self.mappings):
            if not mapping.template:
                continue
            try:
                self._templates[idx] = self.env.from_string(mapping.template)
            except TemplateSyntaxError as e:
                problems.append(f"mappings.{idx} ({mapping.target.value}): {e.message}")
        if problems:
            raise SchemaValidationError("Invalid mapping templates", problems)

    @staticmethod
    def context_for(record: SourceRecord, level: HierarchyLevel) -> Dict[str, Any]:
        return {
            "key": record.key,
            "title": record.title,
            "status": record.status,
            "description": record.description,
            "url": record.url,
            "updated_at": record.updated_at,
            "level": level.value,
            "fields": record.fields,
        }

    def _value(self, idx: int, mapping: FieldMapping, context: Dict[str, Any]) -> Any:
        if idx in self._templates:
            try:
                value: Any = self._templates[idx].render(**context).strip()
            except TemplateError:
                value = None
        else:
            value = resolve_path(context, mapping.source)
        if isinstance(value, dict):
            value = value.get("value") or value.get("name")
        if mapping.values and value is not None:
            value = mapping.values.get(str(value), mapping.default if mapping.default is not None else value)
        if value is None or value == "":
            value = mapping.default
        return value

    def render(self, record: SourceRecord, level: HierarchyLevel) -> MappedFields:
        result = MappedFields(title=record.title, body=record.description)
        context = self.context_for(record, level)
        for idx, mapping in enumerate(self.mappings):
            value = self._value(idx, mapping, context)
            if value is None:
                continue
            if mapping.target == MappingTarget.TITLE:
                result.title = str(value)
            elif mapping.target == MappingTarget.BODY:
                result.body = str(value)
            else:
                items = value if isinstance(value, list) else str(value).split(",")
                for item in items:
                    if isinstance(item, dict):
                        item = item.get("value") or item.get("name")
                    label = str(item or "").strip()
                    if label and label not in result.labels:
                        result.labels.append(label)
        return result
