from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Sequence

from export_sink.core.errors import ConfigError
from export_sink.core.models import ProjectionColumn, RowBatch


def column_index_for(projection: Sequence[ProjectionColumn]) -> Dict[str, int]:
    """Column name -> position, in projection order."""
    return {col.name: i for i, col in enumerate(projection)}


def iter_jsonl_batches(path: str, projection: Sequence[ProjectionColumn]) -> Iterator[RowBatch]:
    """
    Read rows from a JSON Lines file.

    Each line is either an object keyed by column name (missing keys become None)
    or an array already in projection order. Blank lines are skipped.

    Raises:
        ConfigError: On a line that is not valid JSON or has the wrong shape.
    """
    column_index = column_index_for(projection)
    names = [col.name for col in projection]

    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError as e:
                raise ConfigError(f"{path}:{line_no}: invalid JSON: {e}") from e
            yield RowBatch(values=_values(obj, names, path, line_no), column_index=column_index)


def _values(obj: Any, names: List[str], path: str, line_no: int) -> List[Any]:
    if isinstance(obj, dict):
        return [obj.get(name) for name in names]
    if isinstance(obj, list):
        if len(obj) != len(names):
            raise ConfigError(f"{path}:{line_no}: expected {len(names)} values, got {len(obj)}")
        return obj
    raise ConfigError(f"{path}:{line_no}: row must be a JSON object or array")
