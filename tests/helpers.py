"""Shared fakes for the storage layer."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional
from unittest.mock import Mock


class FakeS3Client:
    """In-memory stand-in for the S3 object and multipart upload calls."""

    def __init__(
        self,
        fail_with: Optional[Exception] = None,
        fail_on: Iterable[str] = ("put_object", "complete_multipart_upload"),
    ):
        self.objects: Dict[tuple, bytes] = {}
        self.calls: List[Dict[str, Any]] = []
        self.uploads: Dict[str, Dict[int, bytes]] = {}
        self.aborted: List[str] = []
        self.fail_with = fail_with
        self.fail_on = set(fail_on)
        self._lock = threading.Lock()

    def _record(self, op: str, **kwargs) -> None:
        with self._lock:
            self.calls.append({"op": op, **kwargs})
        if self.fail_with is not None and op in self.fail_on:
            raise self.fail_with

    def put_object(self, Bucket, Key, Body=b"", **extra):
        self._record("put_object", Bucket=Bucket, Key=Key, **extra)
        self.objects[(Bucket, Key)] = bytes(Body)
        return {"ETag": '"whole"'}

    def create_multipart_upload(self, Bucket, Key, **extra):
        self._record("create_multipart_upload", Bucket=Bucket, Key=Key, **extra)
        upload_id = f"upload-{len(self.uploads) + len(self.aborted) + 1}"
        self.uploads[upload_id] = {}
        return {"UploadId": upload_id}

    def upload_part(self, Bucket, Key, UploadId, PartNumber, Body):
        self._record("upload_part", Bucket=Bucket, Key=Key, UploadId=UploadId, PartNumber=PartNumber)
        with self._lock:
            self.uploads[UploadId][PartNumber] = bytes(Body)
        return {"ETag": f'"etag-{PartNumber}"'}

    def complete_multipart_upload(self, Bucket, Key, UploadId, MultipartUpload):
        self._record("complete_multipart_upload", Bucket=Bucket, Key=Key, UploadId=UploadId, Parts=MultipartUpload["Parts"])
        parts = self.uploads.pop(UploadId)
        self.objects[(Bucket, Key)] = b"".join(parts[p["PartNumber"]] for p in MultipartUpload["Parts"])

    def abort_multipart_upload(self, Bucket, Key, UploadId):
        self._record("abort_multipart_upload", Bucket=Bucket, Key=Key, UploadId=UploadId)
        self.uploads.pop(UploadId, None)
        self.aborted.append(UploadId)

    def ops(self) -> List[str]:
        return [c["op"] for c in self.calls]

    def object_args(self) -> Dict[str, Any]:
        """Request arguments of the call that created the object."""
        for call in self.calls:
            if call["op"] in ("put_object", "create_multipart_upload"):
                return {k: v for k, v in call.items() if k not in ("op", "Bucket", "Key")}
        raise AssertionError("no object was created")

    def body(self, bucket: str, key: str) -> bytes:
        return self.objects[(bucket, key)]


class ClientFactory:
    """Records the (session, region) a sink asks a client for."""

    def __init__(self, client: Optional[FakeS3Client] = None):
        self.client = client or FakeS3Client()
        self.requests: List[tuple] = []

    def __call__(self, session, region):
        self.requests.append((session, region))
        return self.client


def sts_client(access_key: str = "ASIATESTKEY0001", expires_in: timedelta = timedelta(hours=1)) -> Mock:
    sts = Mock()
    sts.assume_role.return_value = {
        "Credentials": {
            "AccessKeyId": access_key,
            "SecretAccessKey": "secret-value",
            "SessionToken": "session-token",
            "Expiration": datetime.now(timezone.utc) + expires_in,
        }
    }
    return sts


def base_session(sts: Any = None, region: Optional[str] = None, profile: str = "default") -> Mock:
    """Ambient session double whose STS client is ``sts``."""
    session = Mock()
    session.region_name = region
    session.profile_name = profile
    session.client.return_value = sts if sts is not None else sts_client()
    return session
