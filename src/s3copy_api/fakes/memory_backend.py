"""
In-memory StorageBackend.

Models buckets in regions, objects and multipart uploads closely enough
to exercise the copy engine without a network: completion validates part
order and etags like S3 does. Every call is logged and failures can be
injected per operation and part number.
"""

import hashlib
from dataclasses import dataclass, field
from threading import Lock

from botocore.exceptions import ClientError

from s3copy_api.backend import StorageBackend
from s3copy_api.types import ByteRange, CommittedPart, ObjectHead, ObjectLocator


def service_error(code: str, message: str = "", operation: str = "Fake") -> ClientError:
    """Build the botocore error S3 would raise for code."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def _etag(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


@dataclass
class _Upload:
    destination: ObjectLocator
    parts: dict[int, tuple[str, bytes]] = field(default_factory=dict)


@dataclass
class _Failure:
    error: Exception
    part_number: int | None
    remaining: int


class InMemoryBackend(StorageBackend):
    def __init__(self, buckets: dict[str, str] | None = None) -> None:
        self.buckets: dict[str, str] = dict(buckets or {})  # bucket -> region
        self.objects: dict[tuple[str, str, str], bytes] = {}
        self.uploads: dict[str, _Upload] = {}
        self.calls: list[tuple[str, int | None]] = []
        self._failures: dict[str, list[_Failure]] = {}
        self._next_upload = 0
        self._lock = Lock()

    # Test helpers

    def add_bucket(self, bucket: str, region: str) -> None:
        with self._lock:
            self.buckets[bucket] = region

    def put_object(self, locator: ObjectLocator, data: bytes) -> None:
        with self._lock:
            self.objects[self._key(locator)] = bytes(data)

    def get_object(self, locator: ObjectLocator) -> bytes | None:
        with self._lock:
            return self.objects.get(self._key(locator))

    def fail(
        self,
        operation: str,
        error: Exception,
        part_number: int | None = None,
        times: int = 1,
    ) -> None:
        """Make the next `times` calls of operation (for part_number, if given) raise error."""
        with self._lock:
            self._failures.setdefault(operation, []).append(
                _Failure(error=error, part_number=part_number, remaining=times)
            )

    def count(self, operation: str) -> int:
        with self._lock:
            return sum(1 for op, _ in self.calls if op == operation)

    def part_numbers(self, operation: str) -> list[int]:
        with self._lock:
            return [n for op, n in self.calls if op == operation and n is not None]

    def open_sessions(self) -> list[str]:
        with self._lock:
            return list(self.uploads)

    # Internals, called with the lock held

    @staticmethod
    def _key(locator: ObjectLocator) -> tuple[str, str, str]:
        return (locator.domain, locator.bucket, locator.key)

    def _record(self, operation: str, part_number: int | None = None) -> None:
        self.calls.append((operation, part_number))
        for failure in self._failures.get(operation, []):
            if failure.remaining <= 0:
                continue
            if failure.part_number is not None and failure.part_number != part_number:
                continue
            failure.remaining -= 1
            raise failure.error

    def _read(self, locator: ObjectLocator) -> bytes:
        data = self.objects.get(self._key(locator))
        if data is None:
            raise service_error("NoSuchKey", f"No such key: {locator.s3_url()}")
        return data

    def _upload(self, upload_id: str) -> _Upload:
        upload = self.uploads.get(upload_id)
        if upload is None:
            raise service_error("NoSuchUpload", f"No such upload: {upload_id}")
        return upload

    @staticmethod
    def _slice(data: bytes, byte_range: ByteRange) -> bytes:
        if byte_range.end >= len(data):
            raise service_error(
                "InvalidRange", f"Range {byte_range} outside object of {len(data)} bytes"
            )
        return data[byte_range.start : byte_range.end + 1]

    # StorageBackend

    def locate(self, bucket: str, key: str) -> ObjectLocator:
        with self._lock:
            self._record("locate")
            region = self.buckets.get(bucket)
            if region is None:
                raise service_error("NoSuchBucket", f"No such bucket: {bucket}")
            return ObjectLocator(domain=region, bucket=bucket, key=key)

    def head_object(self, locator: ObjectLocator) -> ObjectHead:
        with self._lock:
            self._record("head_object")
            data = self.objects.get(self._key(locator))
            if data is None:
                return ObjectHead.missing()
            return ObjectHead(size=len(data), etag=_etag(data), storage_class="STANDARD")

    def direct_copy(self, source: ObjectLocator, destination: ObjectLocator) -> None:
        with self._lock:
            self._record("direct_copy")
            self.objects[self._key(destination)] = self._read(source)

    def open_upload_session(self, destination: ObjectLocator) -> str:
        with self._lock:
            self._record("open_upload_session")
            self._next_upload += 1
            upload_id = f"upload-{self._next_upload}"
            self.uploads[upload_id] = _Upload(destination=destination)
            return upload_id

    def copy_part_range(
        self,
        destination: ObjectLocator,
        upload_id: str,
        part_number: int,
        source: ObjectLocator,
        byte_range: ByteRange,
    ) -> CommittedPart:
        with self._lock:
            self._record("copy_part_range", part_number)
            upload = self._upload(upload_id)
            data = self._slice(self._read(source), byte_range)
            etag = _etag(data)
            upload.parts[part_number] = (etag, data)
            return CommittedPart(part_number=part_number, etag=etag)

    def upload_part(
        self,
        destination: ObjectLocator,
        upload_id: str,
        part_number: int,
        data: bytes,
    ) -> CommittedPart:
        with self._lock:
            self._record("upload_part", part_number)
            upload = self._upload(upload_id)
            etag = _etag(data)
            upload.parts[part_number] = (etag, bytes(data))
            return CommittedPart(part_number=part_number, etag=etag)

    def read_range(self, source: ObjectLocator, byte_range: ByteRange) -> bytes:
        with self._lock:
            self._record("read_range")
            return self._slice(self._read(source), byte_range)

    def complete_session(
        self,
        destination: ObjectLocator,
        upload_id: str,
        parts: list[CommittedPart],
    ) -> None:
        with self._lock:
            self._record("complete_session")
            upload = self._upload(upload_id)
            if not parts:
                raise service_error("MalformedXML", "No parts given")
            numbers = [p.part_number for p in parts]
            if numbers != sorted(set(numbers)):
                raise service_error("InvalidPartOrder", f"Parts out of order: {numbers}")
            chunks: list[bytes] = []
            for part in parts:
                stored = upload.parts.get(part.part_number)
                if stored is None or stored[0] != part.etag.replace('"', ""):
                    raise service_error(
                        "InvalidPart", f"Part {part.part_number} was not uploaded"
                    )
                chunks.append(stored[1])
            self.objects[self._key(destination)] = b"".join(chunks)
            del self.uploads[upload_id]

    def abort_session(self, destination: ObjectLocator, upload_id: str) -> None:
        with self._lock:
            self._record("abort_session")
            self.uploads.pop(upload_id, None)

    def delete_object(self, locator: ObjectLocator) -> None:
        with self._lock:
            self._record("delete_object")
            self.objects.pop(self._key(locator), None)
