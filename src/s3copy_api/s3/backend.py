"""
boto3 implementation of StorageBackend, one client per region.

The domain of an ObjectLocator is the bucket's region, server side part
copies are only attempted when source and destination share it.
"""

import logging
from threading import Lock
from typing import Callable

from botocore.client import BaseClient
from botocore.exceptions import ClientError

from s3copy_api.backend import StorageBackend
from s3copy_api.s3.create import S3Config, create_s3_client
from s3copy_api.s3.types import S3Credentials, S3Provider
from s3copy_api.types import ByteRange, CommittedPart, ObjectHead, ObjectLocator

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_DEFAULT_REGION = "us-east-1"
# get_bucket_location returns legacy names for a few regions.
_LEGACY_LOCATIONS = {None: "us-east-1", "": "us-east-1", "EU": "eu-west-1"}


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def _copy_source(source: ObjectLocator) -> dict:
    return {"Bucket": source.bucket, "Key": source.key}


class S3Backend(StorageBackend):
    def __init__(
        self,
        credentials: S3Credentials,
        s3_config: S3Config | None = None,
        client_factory: Callable[[str], BaseClient] | None = None,
    ) -> None:
        self.credentials = credentials
        self.s3_config = s3_config or S3Config()
        self._client_factory = client_factory or self._create_client
        self._clients: dict[str, BaseClient] = {}
        self._regions: dict[str, str] = {}
        self._lock = Lock()

    def _create_client(self, region: str) -> BaseClient:
        return create_s3_client(self.credentials, self.s3_config, region_name=region)

    def client(self, domain: str) -> BaseClient:
        with self._lock:
            client = self._clients.get(domain)
            if client is None:
                client = self._client_factory(domain)
                self._clients[domain] = client
            return client

    def _default_domain(self) -> str:
        if self.credentials.provider != S3Provider.S3:
            # Non AWS providers have no region lookup, the endpoint is the domain.
            return (
                self.credentials.region_name
                or self.credentials.endpoint_url
                or _DEFAULT_REGION
            )
        return self.credentials.region_name or _DEFAULT_REGION

    def locate(self, bucket: str, key: str) -> ObjectLocator:
        with self._lock:
            region = self._regions.get(bucket)
        if region is None:
            default = self._default_domain()
            if self.credentials.provider != S3Provider.S3:
                region = default
            else:
                response = self.client(default).get_bucket_location(Bucket=bucket)
                constraint = response.get("LocationConstraint")
                region = _LEGACY_LOCATIONS.get(constraint, constraint)
            logger.debug(f"Bucket {bucket} is in {region}")
            with self._lock:
                self._regions[bucket] = region
        return ObjectLocator(domain=region, bucket=bucket, key=key)

    def head_object(self, locator: ObjectLocator) -> ObjectHead:
        try:
            response = self.client(locator.domain).head_object(
                Bucket=locator.bucket, Key=locator.key
            )
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return ObjectHead.missing()
            raise
        return ObjectHead(
            size=int(response["ContentLength"]),
            etag=str(response.get("ETag", "")).replace('"', ""),
            exists=True,
            storage_class=response.get("StorageClass"),
            last_modified=response.get("LastModified"),
        )

    def direct_copy(self, source: ObjectLocator, destination: ObjectLocator) -> None:
        self.client(destination.domain).copy_object(
            Bucket=destination.bucket,
            Key=destination.key,
            CopySource=_copy_source(source),
        )

    def open_upload_session(self, destination: ObjectLocator) -> str:
        mpu = self.client(destination.domain).create_multipart_upload(
            Bucket=destination.bucket, Key=destination.key
        )
        return mpu["UploadId"]

    def copy_part_range(
        self,
        destination: ObjectLocator,
        upload_id: str,
        part_number: int,
        source: ObjectLocator,
        byte_range: ByteRange,
    ) -> CommittedPart:
        part = self.client(destination.domain).upload_part_copy(
            Bucket=destination.bucket,
            Key=destination.key,
            CopySource=_copy_source(source),
            CopySourceRange=byte_range.to_header(),
            PartNumber=part_number,
            UploadId=upload_id,
        )
        return CommittedPart(
            part_number=part_number, etag=part["CopyPartResult"]["ETag"]
        )

    def upload_part(
        self,
        destination: ObjectLocator,
        upload_id: str,
        part_number: int,
        data: bytes,
    ) -> CommittedPart:
        part = self.client(destination.domain).upload_part(
            Bucket=destination.bucket,
            Key=destination.key,
            PartNumber=part_number,
            UploadId=upload_id,
            Body=data,
            ContentLength=len(data),
        )
        return CommittedPart(part_number=part_number, etag=part["ETag"])

    def read_range(self, source: ObjectLocator, byte_range: ByteRange) -> bytes:
        response = self.client(source.domain).get_object(
            Bucket=source.bucket, Key=source.key, Range=byte_range.to_header()
        )
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def complete_session(
        self,
        destination: ObjectLocator,
        upload_id: str,
        parts: list[CommittedPart],
    ) -> None:
        self.client(destination.domain).complete_multipart_upload(
            Bucket=destination.bucket,
            Key=destination.key,
            UploadId=upload_id,
            MultipartUpload={"Parts": CommittedPart.to_json_array(parts)},
        )

    def abort_session(self, destination: ObjectLocator, upload_id: str) -> None:
        try:
            self.client(destination.domain).abort_multipart_upload(
                Bucket=destination.bucket, Key=destination.key, UploadId=upload_id
            )
        except ClientError as e:
            if _error_code(e) == "NoSuchUpload":
                logger.debug(f"Upload {upload_id} already gone")
                return
            raise

    def delete_object(self, locator: ObjectLocator) -> None:
        self.client(locator.domain).delete_object(
            Bucket=locator.bucket, Key=locator.key
        )
