from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

import boto3

from export_sink.config_models import PARQUET_FORMAT, SinkConfig
from export_sink.core.models import ProjectionColumn
from export_sink.sinks.base import Sink
from export_sink.sinks.csv_sink import CsvSink
from export_sink.sinks.parquet_sink import ParquetSink
from export_sink.storage.client import S3ClientFactory
from export_sink.utils.logging import get_logger


class SinkFactory:
    """
    Factory responsible for choosing and opening the sink of one export statement.
    Sessions and client factories are injected, never shared through globals.
    """

    def __init__(
        self,
        session: Optional[boto3.Session] = None,
        client_factory: Optional[S3ClientFactory] = None,
    ):
        self.session = session
        self.client_factory = client_factory
        self.log = get_logger("export_sink.factory")

    def create(
        self,
        fmt: Any,
        destination: str,
        config: SinkConfig | Mapping[str, Any] | None = None,
        projection: Sequence[ProjectionColumn] = (),
    ) -> Sink:
        """
        Build the sink for ``fmt`` and open it.

        Args:
            fmt: Output format. Only the exact value "parquet" selects Parquet; anything else is CSV.
            destination: s3://bucket/key path.
            config: Sink parameters.
            projection: Projected columns of the query, used for the Parquet schema.

        Returns:
            An open sink.

        Raises:
            ExportError: If the sink cannot be opened.
        """
        sink = self._sink(fmt)
        try:
            sink.open(destination, config, projection)
        except Exception as e:
            self.log.error("Error creating S3 sink '%s' for path '%s'", e, destination)
            raise
        return sink

    def _sink(self, fmt: Any) -> Sink:
        """Create the unopened sink for the format."""
        if fmt == PARQUET_FORMAT:
            self.log.debug("Format == Parquet")
            return ParquetSink(session=self.session, client_factory=self.client_factory)
        return CsvSink(session=self.session, client_factory=self.client_factory)


def new_s3_sink(
    destination: str,
    params: Optional[Mapping[str, Any]] = None,
    projection: Sequence[ProjectionColumn] = (),
    session: Optional[boto3.Session] = None,
    client_factory: Optional[S3ClientFactory] = None,
) -> Sink:
    """Create and open a sink from a raw parameter mapping; ``params["format"]`` selects the variant."""
    config = SinkConfig.from_params(params)
    return SinkFactory(session=session, client_factory=client_factory).create(
        config.format, destination, config, projection
    )
