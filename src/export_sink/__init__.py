"""
S3 export sink for ``SELECT ... INTO "s3://bucket/key"`` queries.

Streams ordered result rows into a single S3 object as delimited text or Parquet.
"""

from export_sink.config_models import SinkConfig
from export_sink.core.engine import ExportRunner
from export_sink.core.errors import ConfigError, CredentialError, ExportError, FinalizeError, WriteError
from export_sink.core.factory import SinkFactory, new_s3_sink
from export_sink.core.models import Destination, ExportReport, ProjectionColumn, ProjectionType, RowBatch, SinkState

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "CredentialError",
    "Destination",
    "ExportError",
    "ExportReport",
    "ExportRunner",
    "FinalizeError",
    "ProjectionColumn",
    "ProjectionType",
    "RowBatch",
    "SinkConfig",
    "SinkFactory",
    "SinkState",
    "WriteError",
    "new_s3_sink",
]
