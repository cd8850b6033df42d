from __future__ import annotations

from export_sink.core.errors import ConfigError
from export_sink.core.models import Destination

_SCHEME = "s3://"


def parse_destination(path: str) -> Destination:
    """
    Split an ``s3://bucket/key`` path into bucket and object key.

    The scheme is matched case-insensitively; the bucket and key keep their case.

    Raises:
        ConfigError: If the bucket or the key is missing.
    """
    rest = str(path or "").strip()
    if rest.lower().startswith(_SCHEME):
        rest = rest[len(_SCHEME):]

    bucket, sep, key = rest.partition("/")
    if not bucket:
        raise ConfigError(f"no bucket specified in destination '{path}'")
    if not sep or not key:
        raise ConfigError(f"no file specified in destination '{path}'")
    return Destination(bucket=bucket, key=key)
