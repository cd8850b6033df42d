from __future__ import annotations
from typing import Any, Mapping, Protocol, Sequence

from export_sink.config_models import SinkConfig
from export_sink.core.models import ProjectionColumn, SinkState


class Sink(Protocol):
    """Protocol for export sinks: Open -> Next* -> Close, one export statement per instance."""

    state: SinkState

    def open(
        self,
        destination: str,
        config: SinkConfig | Mapping[str, Any] | None,
        projection: Sequence[ProjectionColumn] = (),
    ) -> None: ...

    def next(self, row: Sequence[Any], column_index: Mapping[str, int]) -> None: ...

    def close(self) -> None: ...

    def abort(self) -> None: ...

    @property
    def bytes_written(self) -> int: ...


def header_names(column_index: Mapping[str, int]) -> list[str]:
    """Column names ordered by their position in the mapping."""
    return [name for name, _ in sorted(column_index.items(), key=lambda kv: kv[1])]

