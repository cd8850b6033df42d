from __future__ import annotations

from typing import Any, Callable, Optional

import boto3
from botocore.config import Config

# Upper bound on attempts for transient storage failures.
MAX_ATTEMPTS = 10
# Parallel part uploads for a single object.
UPLOAD_CONCURRENCY = 16
MULTIPART_CHUNK_BYTES = 8 * 1024 * 1024

S3ClientFactory = Callable[[boto3.Session, Optional[str]], Any]


def build_s3_client(session: boto3.Session, region: Optional[str] = None, max_attempts: int = MAX_ATTEMPTS):
    """Create an S3 client from a session with bounded retries and a target region."""
    config = Config(
        retries={"max_attempts": max_attempts, "mode": "standard"},
        max_pool_connections=UPLOAD_CONCURRENCY,
    )
    return session.client("s3", region_name=region, config=config)
