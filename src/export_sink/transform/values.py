from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, List, Sequence

from export_sink.core.models import BoolValue, StringValue


class ValueKind(str, Enum):
    """Tag resolved once per incoming value."""

    TEXT = "text"
    BOOLEAN = "boolean"
    OTHER = "other"


def classify(value: Any) -> ValueKind:
    """Tag a row value as text, boolean or anything else."""
    if isinstance(value, (str, StringValue)):
        return ValueKind.TEXT
    if isinstance(value, (bool, BoolValue)):
        return ValueKind.BOOLEAN
    return ValueKind.OTHER


def _text(value: Any) -> str:
    if isinstance(value, StringValue):
        return value.val
    return value


def _boolean(value: Any) -> str:
    if isinstance(value, BoolValue):
        return value.to_string()
    return "true" if value else "false"


def _other(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


_CONVERTERS: Dict[ValueKind, Callable[[Any], str]] = {
    ValueKind.TEXT: _text,
    ValueKind.BOOLEAN: _boolean,
    ValueKind.OTHER: _other,
}


def to_text(value: Any) -> str:
    """Render a row value as whitespace-trimmed text."""
    return _CONVERTERS[classify(value)](value).strip()


def row_to_text(row: Sequence[Any]) -> List[str]:
    return [to_text(v) for v in row]
