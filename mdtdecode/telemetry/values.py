"""Rebuilding nested mappings from self-describing key/value field lists.

Each GPB-KV field carries its own name and at most one typed value. A field
holding a nested field list becomes a nested dict; every other field becomes
a single value under its name.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..loader.util import json_name


class ValueKind(Enum):
    """Value arms of a self-describing field, in detection priority order."""

    FIELDS = "fields"
    BYTES = "bytes_value"
    STRING = "string_value"
    BOOL = "bool_value"
    UINT32 = "uint32_value"
    UINT64 = "uint64_value"
    SINT32 = "sint32_value"
    SINT64 = "sint64_value"
    DOUBLE = "double_value"
    FLOAT = "float_value"

    @property
    def camel_key(self) -> str:
        return json_name(self.value)


def _arm(entry: Mapping[str, Any], kind: ValueKind) -> Any:
    value = entry.get(kind.value)
    if value is None:
        value = entry.get(kind.camel_key)
    return value


@dataclass(frozen=True)
class FieldValue:
    """One named field with its detected value arm, or no kind at all."""

    name: str
    kind: ValueKind | None
    value: Any = None

    @classmethod
    def from_mapping(cls, entry: Mapping[str, Any]) -> "FieldValue":
        name = entry.get("name") or ""
        for kind in ValueKind:
            value = _arm(entry, kind)
            if value is None:
                continue
            if kind is ValueKind.FIELDS:
                if not value:
                    continue
                value = tuple(cls.from_mapping(child) for child in value)
            return cls(name=name, kind=kind, value=value)
        return cls(name=name, kind=None)


def reconstruct(container: dict[str, Any],
                entries: Iterable["FieldValue | Mapping[str, Any]"]) -> dict[str, Any]:
    """Populate `container` from a field list and return it.

    Entries without a representable value add no key. A later entry with the
    same name replaces an earlier one.
    """
    for entry in entries:
        if not isinstance(entry, FieldValue):
            entry = FieldValue.from_mapping(entry)
        if entry.kind is None:
            continue
        if entry.kind is ValueKind.FIELDS:
            container[entry.name] = reconstruct({}, entry.value)
        else:
            container[entry.name] = entry.value
    return container
