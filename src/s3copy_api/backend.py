"""
Storage backend interface consumed by the copy engine.

Implementations: s3copy_api.s3.backend.S3Backend (boto3) and
s3copy_api.fakes.memory_backend.InMemoryBackend (tests, dry runs).
"""

import abc

from s3copy_api.types import ByteRange, CommittedPart, ObjectHead, ObjectLocator


class StorageBackend(abc.ABC):
    @abc.abstractmethod
    def locate(self, bucket: str, key: str) -> ObjectLocator:
        """Resolve the domain (region) of a bucket and return a locator."""

    @abc.abstractmethod
    def head_object(self, locator: ObjectLocator) -> ObjectHead:
        """Return the object's metadata, exists=False when there is no such key."""

    @abc.abstractmethod
    def direct_copy(self, source: ObjectLocator, destination: ObjectLocator) -> None:
        pass

    @abc.abstractmethod
    def open_upload_session(self, destination: ObjectLocator) -> str:
        """Create a multipart upload and return its upload id."""

    @abc.abstractmethod
    def copy_part_range(
        self,
        destination: ObjectLocator,
        upload_id: str,
        part_number: int,
        source: ObjectLocator,
        byte_range: ByteRange,
    ) -> CommittedPart:
        pass

    @abc.abstractmethod
    def upload_part(
        self,
        destination: ObjectLocator,
        upload_id: str,
        part_number: int,
        data: bytes,
    ) -> CommittedPart:
        pass

    @abc.abstractmethod
    def read_range(self, source: ObjectLocator, byte_range: ByteRange) -> bytes:
        pass

    @abc.abstractmethod
    def complete_session(
        self,
        destination: ObjectLocator,
        upload_id: str,
        parts: list[CommittedPart],
    ) -> None:
        pass

    @abc.abstractmethod
    def abort_session(self, destination: ObjectLocator, upload_id: str) -> None:
        """Abort a multipart upload, aborting an unknown upload is not an error."""

    @abc.abstractmethod
    def delete_object(self, locator: ObjectLocator) -> None:
        pass
