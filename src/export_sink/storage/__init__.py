from export_sink.storage.credentials import ResolvedCredentials, resolve_session, snapshot_credentials
from export_sink.storage.destination import parse_destination
from export_sink.storage.upload import S3UploadStream

__all__ = [
    "ResolvedCredentials",
    "S3UploadStream",
    "parse_destination",
    "resolve_session",
    "snapshot_credentials",
]
