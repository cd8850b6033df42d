"""
Derivation of the columnar output schema from the query projection.

The derived types describe the logical content of each column. The physical
Parquet schema built from them stores every column as UTF-8 text and keeps the
logical type in the field metadata, so downstream readers see string columns.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence, Tuple

import pyarrow as pa

from export_sink.core.models import ProjectionColumn, ProjectionType


class PrimitiveType(str, Enum):
    """Primitive column types of the output file."""

    INTEGER64 = "INT64"
    FLOAT64 = "DOUBLE"
    BOOLEAN = "BOOLEAN"
    UTF8_STRING = "UTF8"


_TYPE_MAP: Dict[ProjectionType, PrimitiveType] = {
    ProjectionType.INT: PrimitiveType.INTEGER64,
    ProjectionType.NUMBER: PrimitiveType.FLOAT64,
    ProjectionType.BOOL: PrimitiveType.BOOLEAN,
}

LOGICAL_TYPE_KEY = b"logical_type"
SCHEMA_METADATA_KEY = b"export_sink.schema"


@dataclass(frozen=True)
class ColumnSpec:
    """Name and primitive type of one output column."""

    name: str
    type: PrimitiveType

    @property
    def dictionary_encoded(self) -> bool:
        return self.type == PrimitiveType.UTF8_STRING


@dataclass(frozen=True)
class ColumnSchema:
    """Ordered output columns; fixed once derived."""

    columns: Tuple[ColumnSpec, ...]

    def __len__(self) -> int:
        return len(self.columns)

    def __iter__(self):
        return iter(self.columns)

    def names(self) -> List[str]:
        return [c.name for c in self.columns]

    def types(self) -> List[PrimitiveType]:
        return [c.type for c in self.columns]

    def dictionary_columns(self) -> List[str]:
        return [c.name for c in self.columns if c.dictionary_encoded]

    def to_arrow(self) -> pa.Schema:
        """Physical schema: one UTF-8 field per column, tagged with its logical type."""
        fields = [
            pa.field(c.name, pa.string(), metadata={LOGICAL_TYPE_KEY: c.type.value.encode("utf-8")})
            for c in self.columns
        ]
        summary = json.dumps([{"name": c.name, "type": c.type.value} for c in self.columns])
        return pa.schema(fields, metadata={SCHEMA_METADATA_KEY: summary.encode("utf-8")})


def primitive_type_for(projection_type: ProjectionType) -> PrimitiveType:
    return _TYPE_MAP.get(projection_type, PrimitiveType.UTF8_STRING)


def derive_schema(projection: Sequence[ProjectionColumn]) -> ColumnSchema:
    """Map projected columns, in projection order, to output column specs."""
    return ColumnSchema(
        columns=tuple(ColumnSpec(name=col.name, type=primitive_type_for(col.type)) for col in projection)
    )
