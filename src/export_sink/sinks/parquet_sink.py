from __future__ import annotations

import contextlib
from typing import Any, List, Mapping, Optional, Sequence

import boto3
import pyarrow as pa
import pyarrow.parquet as pq

from export_sink.config_models import SinkConfig
from export_sink.core.errors import ConfigError, ExportError, FinalizeError, WriteError
from export_sink.core.models import Destination, ProjectionColumn, SinkState
from export_sink.sinks.base import Sink
from export_sink.storage.client import S3ClientFactory, build_s3_client
from export_sink.storage.credentials import ResolvedCredentials, resolve_session
from export_sink.storage.destination import parse_destination
from export_sink.storage.upload import S3UploadStream
from export_sink.transform.schema import ColumnSchema, derive_schema
from export_sink.transform.values import row_to_text
from export_sink.utils.logging import get_logger

CONTENT_TYPE = "application/vnd.apache.parquet"
COMPRESSION = "snappy"
ROW_GROUP_BYTES = 128 * 1024 * 1024  # 128M


class ParquetSink(Sink):
    """
    Sink that writes rows into a Parquet object on S3.

    Rows are buffered column-wise and flushed as one row group once the buffered
    text reaches ``row_group_bytes``. Every column is written as UTF-8 text; the
    type derived from the projection is kept in the field metadata only.

    close() raises if the file cannot be finalized, but only logs a failure of
    the upload that follows (``close_error`` keeps the message).
    """

    def __init__(
        self,
        session: Optional[boto3.Session] = None,
        client_factory: Optional[S3ClientFactory] = None,
        row_group_bytes: int = ROW_GROUP_BYTES,
    ):
        self.session = session
        self.client_factory = client_factory or build_s3_client
        self.row_group_bytes = row_group_bytes
        self.state = SinkState.CREATED
        self.destination: Optional[Destination] = None
        self.config: Optional[SinkConfig] = None
        self.credentials: Optional[ResolvedCredentials] = None
        self.schema: Optional[ColumnSchema] = None
        self.rows_written = 0
        self.row_groups_written = 0
        self.close_error: Optional[str] = None
        self._stream: Optional[S3UploadStream] = None
        self._writer: Optional[pq.ParquetWriter] = None
        self._arrow_schema: Optional[pa.Schema] = None
        self._pending: List[List[str]] = []
        self._pending_rows = 0
        self._pending_bytes = 0
        self.log = get_logger("export_sink.sink.parquet")

    @property
    def bytes_written(self) -> int:
        return self._stream.bytes_written if self._stream else 0

    def open(
        self,
        destination: str,
        config: SinkConfig | Mapping[str, Any] | None = None,
        projection: Sequence[ProjectionColumn] = (),
    ) -> None:
        """Resolve credentials, open the upload stream and the columnar writer."""
        if self.state != SinkState.CREATED:
            raise ConfigError(f"Parquet sink cannot be opened in state '{self.state.value}'")

        try:
            self.config = SinkConfig.from_params(config)
            self.destination = parse_destination(destination)
            region = self.config.resolved_region()

            self.log.info("Parquet Sink: bucket=%s file=%s region=%s", self.destination.bucket, self.destination.key, region)
            if self.config.assume_role_arn:
                self.log.info("Parquet Sink: assuming role %s", self.config.assume_role_arn)
            if self.config.acl:
                self.log.info("Parquet Sink: ACL %s", self.config.acl)

            self.schema = derive_schema(projection)
            if not len(self.schema):
                raise ConfigError("Parquet sink requires at least one projected column")

            session, self.credentials = resolve_session(self.config.assume_role_arn, self.session)
            client = self.client_factory(session, region)
            extra_args = {**self.config.upload_extra_args(), "ContentType": CONTENT_TYPE}
            self._stream = S3UploadStream(client, self.destination, extra_args=extra_args)

            self._arrow_schema = self.schema.to_arrow()
            self._writer = pq.ParquetWriter(
                self._stream,
                self._arrow_schema,
                compression=COMPRESSION,
                use_dictionary=self.schema.dictionary_columns() or False,
            )
        except (pa.ArrowException, OSError) as e:
            self.abort()
            raise WriteError(f"Parquet Sink: can't create writer for {destination}: {e}") from e
        except Exception:
            self.abort()
            raise

        self._reset_pending()
        self.state = SinkState.OPEN
        self.log.info("Parquet Sink: opened s3://%s/%s", self.destination.bucket, self.destination.key)

    def next(self, row: Sequence[Any], column_index: Mapping[str, int]) -> None:
        """Buffer one row as text; flush a row group when the target size is reached."""
        if self.state != SinkState.OPEN or self._writer is None:
            raise WriteError(f"Parquet sink is '{self.state.value}', open call must have failed")

        try:
            vals = row_to_text(row)
        except Exception:
            self.state = SinkState.FAILED
            raise
        if len(vals) != len(self.schema):
            self.state = SinkState.FAILED
            raise WriteError(f"row has {len(vals)} values but the schema has {len(self.schema)} columns")

        for i, v in enumerate(vals):
            self._pending[i].append(v)
            self._pending_bytes += len(v)
        self._pending_rows += 1

        if self._pending_bytes >= self.row_group_bytes:
            try:
                self._flush_row_group()
            except ExportError:
                self.state = SinkState.FAILED
                raise
            except (pa.ArrowException, OSError) as e:
                self.state = SinkState.FAILED
                raise WriteError(f"Parquet row group write to {self.destination.uri} failed: {e}") from e

        self.rows_written += 1

    def close(self) -> None:
        """Finalize row groups and footer, then upload the object."""
        if self._stream is None or self.state == SinkState.CLOSED:
            return

        if self.state == SinkState.FAILED:
            self._discard()
            return

        try:
            self._flush_row_group()
            self._writer.close()
        except (ExportError, pa.ArrowException, OSError) as e:
            self.state = SinkState.FAILED
            self._stream.abort()
            raise FinalizeError(f"Parquet Sink: WriteStop error {e}") from e

        self.state = SinkState.CLOSED
        try:
            self._stream.close()
        except FinalizeError as e:
            self.close_error = str(e)
            self.log.error("Parquet Sink: Outfile close error: %s", e)
            return

        self.log.info(
            "Parquet file successfully written: uri=%s rows=%d row_groups=%d bytes=%d",
            self.destination.uri,
            self.rows_written,
            self.row_groups_written,
            self.bytes_written,
        )

    def _flush_row_group(self) -> None:
        if not self._pending_rows:
            return
        arrays = [pa.array(col, type=pa.string()) for col in self._pending]
        table = pa.Table.from_arrays(arrays, schema=self._arrow_schema)
        self._writer.write_table(table, row_group_size=table.num_rows)
        self.row_groups_written += 1
        self._reset_pending()

    def _reset_pending(self) -> None:
        self._pending = [[] for _ in range(len(self.schema))]
        self._pending_rows = 0
        self._pending_bytes = 0

    def _discard(self) -> None:
        # the footer lands in a buffer that is thrown away below
        if self._writer is not None:
            with contextlib.suppress(ExportError, pa.ArrowException, OSError):
                self._writer.close()
        self._stream.abort()

    def abort(self) -> None:
        """Mark the export failed and discard buffered output."""
        self.state = SinkState.FAILED
        if self._stream is not None:
            self._discard()
