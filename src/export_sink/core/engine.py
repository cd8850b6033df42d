from __future__ import annotations
from typing import Any, Iterable, Mapping, Optional, Sequence

from export_sink.config_models import SinkConfig
from export_sink.core.factory import SinkFactory
from export_sink.core.models import ExportReport, ProjectionColumn, RowBatch
from export_sink.utils.logging import get_logger


class ExportRunner:
    """
    Drives one export statement: Open -> Next* -> Close.

    Batches are written strictly in the order they are yielded. Close runs on
    every exit path. When a batch cannot be produced or written, the sink is
    aborted first so no partial object is uploaded, and the error is re-raised.
    """

    def __init__(self, factory: Optional[SinkFactory] = None):
        self.factory = factory or SinkFactory()
        self.log = get_logger("export_sink.engine")

    def run(
        self,
        destination: str,
        params: SinkConfig | Mapping[str, Any] | None,
        batches: Iterable[RowBatch],
        projection: Sequence[ProjectionColumn] = (),
    ) -> ExportReport:
        """
        Export all batches to the destination.

        Args:
            destination: s3://bucket/key path.
            params: Sink parameters (mapping with wire names or SinkConfig).
            batches: Rows in query result order.
            projection: Projected columns of the query.

        Returns:
            A report summarizing the export.
        """
        config = SinkConfig.from_params(params)
        fmt = "parquet" if config.is_parquet else "csv"
        report = ExportReport(destination=destination, format=fmt)

        self.log.info("Export started: %s format=%s", destination, fmt)
        sink = self.factory.create(config.format, destination, config, projection)

        try:
            for batch in batches:
                sink.next(batch.values, batch.column_index)
                report.rows_written += 1
        except Exception as e:
            sink.abort()
            sink.close()
            self.log.error("Export failed after %d rows: %s", report.rows_written, e)
            raise

        try:
            sink.close()
        finally:
            report.state = sink.state
            report.bytes_uploaded = sink.bytes_written

        close_error = getattr(sink, "close_error", None)
        if close_error:
            report.error = close_error
        self.log.info(
            "Export finished: %s rows=%d bytes=%d state=%s",
            destination,
            report.rows_written,
            report.bytes_uploaded,
            report.state.value,
        )
        return report
