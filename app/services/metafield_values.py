"""Metafield value normalization and list reconciliation."""
import json
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, List, Optional, Union

from app.exceptions import NotFoundError, ValidationError

RawValue = Union[str, List[Any], None]

URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")


@dataclass(frozen=True)
class MetafieldDescriptor:
    namespace: str
    key: str
    type: str
    metaobject_type: Optional[str] = None

    @property
    def is_list(self) -> bool:
        return self.type.startswith("list.")

    @property
    def is_metaobject_reference(self) -> bool:
        return self.type.endswith("metaobject_reference")

    @classmethod
    def from_definition(cls, definition: dict) -> "MetafieldDescriptor":
        """Build from a metafieldDefinitions node."""
        type_name = definition["type"]["name"] if isinstance(definition.get("type"), dict) else definition["type"]
        metaobject_type = None
        for validation in definition.get("validations") or []:
            if validation.get("name") == "metaobject_definition_type":
                metaobject_type = validation.get("value")
        return cls(definition["namespace"], definition["key"], type_name, metaobject_type)


class ListMode(str, Enum):
    MERGE = "merge"
    REPLACE = "replace"
    REMOVE_SUBSET = "remove"
    REMOVE_ALL = "remove_all"


def dump_list(values: List[Any]) -> str:
    return json.dumps(values, separators=(",", ":"), ensure_ascii=False)


def parse_list(incoming: RawValue) -> List[Any]:
    """
    Accept a list, a JSON array string or a comma separated string.

    Comma separated elements are trimmed and empty elements dropped.
    """
    if incoming is None:
        return []
    if isinstance(incoming, list):
        return list(incoming)
    if not isinstance(incoming, str):
        raise ValidationError(f"Expected list-compatible value, got {type(incoming).__name__}")

    text = incoming.strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            raise ValidationError(f"Invalid JSON for list value: {incoming}")
        if not isinstance(parsed, list):
            raise ValidationError(f"Expected a JSON array: {incoming}")
        return parsed

    return [part.strip() for part in text.split(",") if part.strip()]


def parse_existing(existing: Optional[str]) -> List[Any]:
    """Current remote list value; absent or unparseable counts as empty."""
    if not existing:
        return []
    try:
        parsed = json.loads(existing)
    except (TypeError, ValueError):
        return []
    return parsed if isinstance(parsed, list) else []


def reconcile_list(existing: Optional[str], incoming: RawValue, mode: ListMode = ListMode.MERGE) -> str:
    """Combine the stored list with incoming values, returning a JSON array string."""
    mode = ListMode(mode)
    current = parse_existing(existing)

    if mode is ListMode.REMOVE_ALL:
        return dump_list([])

    values = parse_list(incoming)

    if mode is ListMode.REPLACE:
        return dump_list(values)

    if mode is ListMode.REMOVE_SUBSET:
        drop = set(json.dumps(v, sort_keys=True) for v in values)
        return dump_list([v for v in current if json.dumps(v, sort_keys=True) not in drop])

    merged = {}
    for v in current + values:
        merged.setdefault(json.dumps(v, sort_keys=True), v)
    return dump_list(list(merged.values()))


def is_empty_list(value: str) -> bool:
    """An empty list is treated as absence: the metafield gets deleted instead."""
    return parse_existing(value) == []


def normalize_value(type_name: str, raw: RawValue) -> str:
    """Normalize a raw CSV value to the string Shopify expects for ``type_name``."""
    if raw is None:
        raise ValidationError("Missing value")

    if type_name.startswith("list."):
        values = parse_list(raw)
        if type_name.endswith("_reference") and not type_name.endswith("metaobject_reference"):
            for v in values:
                if not str(v).startswith("gid://"):
                    raise ValidationError(f"Invalid GID reference: {v}")
        return dump_list(values)

    value = raw if isinstance(raw, str) else json.dumps(raw)

    if type_name.endswith("_reference"):
        if not value.strip().startswith("gid://") and not type_name.endswith("metaobject_reference"):
            raise ValidationError("Invalid GID reference")
        return value.strip()

    if type_name == "multi_line_text_field":
        return value.replace("\\n", "\n")

    if type_name == "number_integer":
        if not INTEGER_PATTERN.match(value.strip()):
            raise ValidationError(f"Invalid integer: {value}")
        return value.strip()

    if type_name == "number_decimal":
        try:
            Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"Invalid decimal: {value}")
        return value.strip()

    if type_name == "boolean":
        if value.strip() in ("true", "false"):
            return value.strip()
        raise ValidationError(f"Invalid boolean: {value}")

    if type_name == "date_time":
        v = value.strip()
        return v if "T" in v else f"{v}T00:00:00Z"

    if type_name == "json":
        try:
            json.loads(value)
        except ValueError:
            raise ValidationError("Invalid JSON value")
        return value

    if type_name == "url":
        if not URL_PATTERN.match(value.strip()):
            raise ValidationError(f"Invalid URL: {value}")
        return value.strip()

    if type_name == "link":
        v = value.strip()
        if v.startswith("{"):
            return v
        if URL_PATTERN.match(v):
            return json.dumps({"text": "View", "url": v})
        if "|" in v:
            link_type, gid = v.split("|", 1)
            if gid.strip().startswith("gid://"):
                return json.dumps({"type": link_type.strip(), "id": gid.strip()})
        raise ValidationError(f"Invalid link value: {value}")

    return value


def resolve_metaobject_references(client, descriptor: MetafieldDescriptor, values: List[Any]) -> List[str]:
    """
    Turn metaobject handles into GIDs.

    Any handle that cannot be resolved fails the whole row.
    """
    resolved = []
    for v in values:
        v = str(v).strip()
        if v.startswith("gid://"):
            resolved.append(v)
            continue
        if not descriptor.metaobject_type:
            raise ValidationError(f"Cannot resolve metaobject handle without a metaobject type: {v}")
        gid = client.resolve_metaobject(descriptor.metaobject_type, v)
        if not gid:
            raise NotFoundError(f"Metaobject not found for handle: {v}")
        resolved.append(gid)
    return resolved
