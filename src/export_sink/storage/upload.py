from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Dict, List, Optional, Set

from botocore.exceptions import BotoCoreError, ClientError

from export_sink.core.errors import FinalizeError, WriteError
from export_sink.core.models import Destination
from export_sink.storage.client import MULTIPART_CHUNK_BYTES, UPLOAD_CONCURRENCY
from export_sink.utils.logging import get_logger

# S3 accepts at most this many parts per multipart upload.
MAX_PARTS = 10000
# Part size doubles every this many parts so large exports stay under MAX_PARTS.
PART_GROWTH_INTERVAL = 1000
MAX_PART_BYTES = 5 * 1024 * 1024 * 1024

_UPLOAD_ERRORS = (ClientError, BotoCoreError, OSError)


class S3UploadStream:
    """
    Binary write stream for one S3 object.

    Written bytes are cut into parts and uploaded while writing continues, with
    at most ``concurrency`` parts in flight. The multipart upload is started
    with the first full part and completed on close(). An object smaller than
    one part is sent with a single put on close(). abort() cancels the
    multipart upload so no object is created.

    A failed part surfaces as WriteError on a later write(); a failure while
    completing the object surfaces as FinalizeError from close().
    """

    def __init__(
        self,
        client: Any,
        destination: Destination,
        extra_args: Optional[Dict[str, str]] = None,
        part_size: int = MULTIPART_CHUNK_BYTES,
        concurrency: int = UPLOAD_CONCURRENCY,
    ):
        self.client = client
        self.destination = destination
        self.extra_args = dict(extra_args or {})
        self.part_size = part_size
        self.concurrency = concurrency
        self.bytes_written = 0
        self.upload_id: Optional[str] = None
        self._buffer = bytearray()
        self._part_number = 0
        self._parts: List[Dict[str, Any]] = []
        self._in_flight: Set[Future] = set()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._part_failed = False
        self._closed = False
        self.log = get_logger("export_sink.upload")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def parts_uploaded(self) -> int:
        return len(self._parts)

    def writable(self) -> bool:
        return not self._closed

    def readable(self) -> bool:
        return False

    def seekable(self) -> bool:
        return False

    def tell(self) -> int:
        return self.bytes_written

    def write(self, data) -> int:
        if self._closed:
            raise WriteError(f"write to closed upload stream for {self.destination.uri}")
        chunk = bytes(data)
        self._buffer += chunk
        self.bytes_written += len(chunk)
        while len(self._buffer) >= self.part_size:
            part = bytes(self._buffer[: self.part_size])
            del self._buffer[: self.part_size]
            self._submit_part(part)
        return len(chunk)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        """Upload what is left and complete the object."""
        if self._closed:
            return
        self._closed = True
        try:
            if self.upload_id is None:
                self._put_whole_object()
            else:
                self._complete()
        finally:
            self._shutdown()
        self.log.info(
            "Uploaded %s (%d bytes, %d parts)",
            self.destination.uri,
            self.bytes_written,
            max(len(self._parts), 1),
        )

    def abort(self) -> None:
        """Cancel the upload; the destination object is not created."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        for future in self._in_flight:
            future.cancel()
        self._shutdown()
        if self.upload_id is not None:
            self._abort_multipart()
        self.log.warning("Aborted upload of %s after %d bytes", self.destination.uri, self.bytes_written)

    def _submit_part(self, body: bytes) -> None:
        self._raise_failed_parts()
        if self.upload_id is None:
            self._start()
        if self._part_number >= MAX_PARTS:
            raise WriteError(f"upload of {self.destination.uri} exceeds {MAX_PARTS} parts")

        self._part_number += 1
        if self._part_number % PART_GROWTH_INTERVAL == 0:
            self.part_size = min(self.part_size * 2, MAX_PART_BYTES)

        while len(self._in_flight) >= self.concurrency:
            done, self._in_flight = wait(self._in_flight, return_when=FIRST_COMPLETED)
            self._collect(done, WriteError)
        self._in_flight.add(self._executor.submit(self._upload_part, self._part_number, body))

    def _start(self) -> None:
        try:
            resp = self.client.create_multipart_upload(
                Bucket=self.destination.bucket, Key=self.destination.key, **self.extra_args
            )
        except _UPLOAD_ERRORS as e:
            raise WriteError(f"starting upload of {self.destination.uri} failed: {e}") from e
        self.upload_id = resp["UploadId"]
        self._executor = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="s3-part")
        self.log.debug("Started multipart upload %s for %s", self.upload_id, self.destination.uri)

    def _upload_part(self, part_number: int, body: bytes) -> Dict[str, Any]:
        resp = self.client.upload_part(
            Bucket=self.destination.bucket,
            Key=self.destination.key,
            UploadId=self.upload_id,
            PartNumber=part_number,
            Body=body,
        )
        return {"PartNumber": part_number, "ETag": resp["ETag"]}

    def _raise_failed_parts(self) -> None:
        done = {f for f in self._in_flight if f.done()}
        self._in_flight -= done
        self._collect(done, WriteError)

    def _collect(self, done, error_type) -> None:
        for future in done:
            try:
                self._parts.append(future.result())
            except _UPLOAD_ERRORS as e:
                self._part_failed = True
                raise error_type(f"part upload for {self.destination.uri} failed: {e}") from e

    def _put_whole_object(self) -> None:
        try:
            self.client.put_object(
                Bucket=self.destination.bucket,
                Key=self.destination.key,
                Body=bytes(self._buffer),
                **self.extra_args,
            )
        except _UPLOAD_ERRORS as e:
            raise FinalizeError(f"upload of {self.destination.uri} failed: {e}") from e
        finally:
            self._buffer.clear()

    def _complete(self) -> None:
        try:
            if self._part_failed:
                raise FinalizeError(f"upload of {self.destination.uri} is missing a failed part")
            if self._buffer:
                if self._part_number >= MAX_PARTS:
                    raise FinalizeError(f"upload of {self.destination.uri} exceeds {MAX_PARTS} parts")
                self._part_number += 1
                self._in_flight.add(self._executor.submit(self._upload_part, self._part_number, bytes(self._buffer)))
                self._buffer.clear()
            finished = wait(self._in_flight).done
            self._in_flight = set()
            self._collect(finished, FinalizeError)
            self.client.complete_multipart_upload(
                Bucket=self.destination.bucket,
                Key=self.destination.key,
                UploadId=self.upload_id,
                MultipartUpload={"Parts": sorted(self._parts, key=lambda p: p["PartNumber"])},
            )
        except FinalizeError:
            self._abort_multipart()
            raise
        except _UPLOAD_ERRORS as e:
            self._abort_multipart()
            raise FinalizeError(f"upload of {self.destination.uri} failed: {e}") from e

    def _abort_multipart(self) -> None:
        try:
            self.client.abort_multipart_upload(
                Bucket=self.destination.bucket, Key=self.destination.key, UploadId=self.upload_id
            )
        except _UPLOAD_ERRORS as e:
            self.log.error("Abort of multipart upload %s for %s failed: %s", self.upload_id, self.destination.uri, e)

    def _shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = None
        self._in_flight = set()
