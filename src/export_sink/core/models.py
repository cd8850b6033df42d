from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence


class ProjectionType(str, Enum):
    """Value types reported by the query projection."""

    INT = "int"
    NUMBER = "number"
    BOOL = "bool"
    STRING = "string"
    TIME = "time"
    BYTES = "bytes"
    JSON = "json"
    MAP = "map"
    LIST = "list"
    UNKNOWN = "unknown"


class SinkState(str, Enum):
    """Lifecycle of a sink instance."""

    CREATED = "created"
    OPEN = "open"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass(frozen=True)
class Destination:
    """Bucket and object key of an export target."""

    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True)
class ProjectionColumn:
    """One projected column of the query (output name and value type)."""

    name: str
    type: ProjectionType = ProjectionType.STRING


@dataclass(frozen=True)
class StringValue:
    """String value wrapper handed over by the query engine."""

    val: str

    def to_string(self) -> str:
        return self.val


@dataclass(frozen=True)
class BoolValue:
    """Boolean value wrapper handed over by the query engine."""

    val: bool

    def to_string(self) -> str:
        return "true" if self.val else "false"


@dataclass(frozen=True)
class RowBatch:
    """One output row plus the column name -> position mapping."""

    values: Sequence[Any]
    column_index: Dict[str, int] = field(default_factory=dict)


@dataclass
class ExportReport:
    """Summary of one export statement."""

    destination: str
    format: str
    rows_written: int = 0
    bytes_uploaded: int = 0
    state: SinkState = SinkState.CREATED
    error: Optional[str] = None
