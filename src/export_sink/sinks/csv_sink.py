from __future__ import annotations

import codecs
import csv
from typing import Any, Mapping, Optional, Sequence

import boto3

from export_sink.config_models import SinkConfig
from export_sink.core.errors import ConfigError, ExportError, FinalizeError, WriteError
from export_sink.core.models import Destination, ProjectionColumn, SinkState
from export_sink.sinks.base import Sink, header_names
from export_sink.storage.client import S3ClientFactory, build_s3_client
from export_sink.storage.credentials import ResolvedCredentials, resolve_session
from export_sink.storage.destination import parse_destination
from export_sink.storage.upload import S3UploadStream
from export_sink.transform.values import row_to_text
from export_sink.utils.logging import get_logger

CONTENT_TYPE = "text/csv"


class CsvSink(Sink):
    """Sink that streams delimited text rows into an S3 object."""

    def __init__(
        self,
        session: Optional[boto3.Session] = None,
        client_factory: Optional[S3ClientFactory] = None,
    ):
        self.session = session
        self.client_factory = client_factory or build_s3_client
        self.state = SinkState.CREATED
        self.destination: Optional[Destination] = None
        self.config: Optional[SinkConfig] = None
        self.credentials: Optional[ResolvedCredentials] = None
        self.rows_written = 0
        self._stream: Optional[S3UploadStream] = None
        self._writer = None
        self._headers_written = False
        self.log = get_logger("export_sink.sink.csv")

    @property
    def bytes_written(self) -> int:
        return self._stream.bytes_written if self._stream else 0

    def open(
        self,
        destination: str,
        config: SinkConfig | Mapping[str, Any] | None = None,
        projection: Sequence[ProjectionColumn] = (),
    ) -> None:
        """Parse the destination, resolve credentials and open the upload stream."""
        if self.state != SinkState.CREATED:
            raise ConfigError(f"CSV sink cannot be opened in state '{self.state.value}'")

        try:
            self.config = SinkConfig.from_params(config)
            self.destination = parse_destination(destination)
            self.log.debug(
                "CSV open: bucket=%s key=%s delimiter=%r role=%s acl=%s kms=%s",
                self.destination.bucket,
                self.destination.key,
                self.config.delimiter,
                self.config.assume_role_arn,
                self.config.acl,
                bool(self.config.sse_kms_key_id),
            )

            session, self.credentials = resolve_session(self.config.assume_role_arn, self.session)
            client = self.client_factory(session, self.config.region)
            extra_args = {**self.config.upload_extra_args(), "ContentType": CONTENT_TYPE}
            self._stream = S3UploadStream(client, self.destination, extra_args=extra_args)
            self._writer = csv.writer(
                codecs.getwriter("utf-8")(self._stream),
                delimiter=self.config.delimiter,
                lineterminator="\n",
            )
        except Exception:
            self.abort()
            raise

        self.state = SinkState.OPEN
        self.log.info("CSV sink opened for %s", self.destination.uri)

    def next(self, row: Sequence[Any], column_index: Mapping[str, int]) -> None:
        """Write one row; the first call also writes the header line."""
        if self.state != SinkState.OPEN or self._stream is None:
            raise WriteError(f"CSV sink is '{self.state.value}', open call must have failed")

        try:
            if not self._headers_written:
                header = self.config.delimiter.join(header_names(column_index)) + "\n"
                self._stream.write(header.encode("utf-8"))
                self._headers_written = True
            self._writer.writerow(row_to_text(row))
        except ExportError:
            self.state = SinkState.FAILED
            raise
        except (csv.Error, OSError, UnicodeError) as e:
            self.state = SinkState.FAILED
            raise WriteError(f"CSV write to {self.destination.uri} failed: {e}") from e
        except Exception:
            self.state = SinkState.FAILED
            raise

        self.rows_written += 1

    def close(self) -> None:
        """Flush and upload the object. A no-op if the stream was never opened."""
        if self._stream is None or self.state == SinkState.CLOSED:
            return

        if self.state == SinkState.FAILED:
            self._stream.abort()
            return

        try:
            self._stream.flush()
            self._stream.close()
        except FinalizeError:
            self.state = SinkState.FAILED
            raise

        self.state = SinkState.CLOSED
        self.log.info(
            "CSV write: uri=%s rows=%d bytes=%d",
            self.destination.uri,
            self.rows_written,
            self.bytes_written,
        )

    def abort(self) -> None:
        """Mark the export failed and discard buffered output."""
        self.state = SinkState.FAILED
        if self._stream is not None:
            self._stream.abort()
