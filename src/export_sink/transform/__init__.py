from export_sink.transform.schema import ColumnSchema, ColumnSpec, PrimitiveType, derive_schema
from export_sink.transform.values import ValueKind, classify, row_to_text, to_text

__all__ = [
    "ColumnSchema",
    "ColumnSpec",
    "PrimitiveType",
    "ValueKind",
    "classify",
    "derive_schema",
    "row_to_text",
    "to_text",
]
