# services/object_store.py
import logging
from typing import Dict, Iterator, List, Optional, Protocol, Any
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import Settings

logger = logging.getLogger(__name__)


class ObjectStoreError(Exception):
    """A remote object-store call failed."""

    def __init__(
        self,
        operation: str,
        message: str,
        code: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.message = message
        self.code = code
        self.request_id = request_id

    @classmethod
    def from_boto(cls, operation: str, exc: Exception) -> "ObjectStoreError":
        if isinstance(exc, ClientError):
            err = exc.response.get("Error", {}) or {}
            meta = exc.response.get("ResponseMetadata", {}) or {}
            return cls(
                operation,
                err.get("Message", "") or str(exc),
                code=err.get("Code") or None,
                request_id=meta.get("RequestId"),
            )
        return cls(operation, str(exc))

    def __str__(self) -> str:
        code = f" [{self.code}]" if self.code else ""
        return f"{self.operation} failed{code}: {self.message}"


class ObjectStore(Protocol):
    """Multipart-upload surface of a remote object store."""

    def create_multipart_upload(self, bucket: str, key: str, content_type: str) -> str:
        ...

    def upload_part(self, bucket: str, key: str, upload_id: str, part_number: int, body: bytes) -> str:
        ...

    def complete_multipart_upload(self, bucket: str, key: str, upload_id: str, parts: List[Dict[str, Any]]) -> None:
        ...

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        ...

    def list_multipart_uploads(self, bucket: str, prefix: str = "") -> Iterator[Dict[str, Any]]:
        ...

    def generate_download_url(self, bucket: str, key: str, expires_in: int) -> str:
        ...


class S3ObjectStore:
    """ObjectStore backed by a boto3 S3 client. Safe to share across sessions."""

    def __init__(self, client):
        self.s3_client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        client = boto3.client(
            "s3",
            region_name=settings.aws_region,
            endpoint_url=settings.endpoint_url,
            aws_access_key_id=settings.aws_access_key,
            aws_secret_access_key=settings.aws_secret_key,
            config=boto3.session.Config(signature_version="s3v4"),
        )
        logger.info(f"S3 client initialised (region={settings.aws_region}, endpoint={settings.endpoint_url or 'aws'})")
        return cls(client)

    def create_multipart_upload(self, bucket: str, key: str, content_type: str) -> str:
        try:
            response = self.s3_client.create_multipart_upload(
                Bucket=bucket,
                Key=key,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError.from_boto("CreateMultipartUpload", e) from e
        return response["UploadId"]

    def upload_part(self, bucket: str, key: str, upload_id: str, part_number: int, body: bytes) -> str:
        try:
            response = self.s3_client.upload_part(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=body,
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError.from_boto("UploadPart", e) from e
        # ETag is passed back to complete exactly as received, quotes included
        return response["ETag"]

    def complete_multipart_upload(self, bucket: str, key: str, upload_id: str, parts: List[Dict[str, Any]]) -> None:
        try:
            self.s3_client.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError.from_boto("CompleteMultipartUpload", e) from e

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        try:
            self.s3_client.abort_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError.from_boto("AbortMultipartUpload", e) from e

    def list_multipart_uploads(self, bucket: str, prefix: str = "") -> Iterator[Dict[str, Any]]:
        """Yield every incomplete multipart upload under prefix (Key, UploadId, Initiated)."""
        paginator = self.s3_client.get_paginator("list_multipart_uploads")
        try:
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                yield from page.get("Uploads", [])
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError.from_boto("ListMultipartUploads", e) from e

    def generate_download_url(self, bucket: str, key: str, expires_in: int) -> str:
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError.from_boto("PresignGetObject", e) from e


def _segments(path: str) -> List[str]:
    return [s for s in (path or "").split("/") if s not in ("", ".", "..")]


def object_key_for(prefix: str, file_name: str) -> str:
    """
    Join the configured prefix and the client's file name into an object key.

    Returns an empty string when the file name has no usable path segment.
    """
    name = _segments(file_name)
    if not name:
        return ""
    return "/".join(_segments(prefix) + name)


def build_object_url(settings: Settings, key: str) -> str:
    quoted = quote(key, safe="/")
    if settings.endpoint_url:
        return f"{settings.endpoint_url.rstrip('/')}/{settings.bucket_name}/{quoted}"
    return f"https://{settings.bucket_name}.s3.{settings.aws_region}.amazonaws.com/{quoted}"
