"""
Object store gateway over S3-compatible multipart primitives.

ObjectStoreGateway is the capability the upload services consume;
S3ObjectStoreGateway implements it with boto3 against MinIO or S3.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import Settings, settings as default_settings
from ..core.errors import NotFoundError, StoreError
from ..schemas import PartETag, UploadPartInfo

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "uploads/"

_NO_SUCH_UPLOAD = {"NoSuchUpload"}
_NO_SUCH_KEY = {"NoSuchKey", "404", "NotFound"}


def object_key_for(file_name: str) -> str:
    """Collision-resistant object key: uploads/{uuid}/{file_name}"""
    return f"{UPLOADS_PREFIX}{uuid.uuid4()}/{file_name}"


@dataclass(frozen=True)
class ObjectStat:
    size_bytes: int
    integrity_tag: Optional[str]


class ObjectStoreGateway(ABC):
    """Multipart-upload capability of the backing object store"""

    @abstractmethod
    def create_session(self, object_key: str, content_type: str) -> str:
        """Open a multipart session and return its upload ID."""

    @abstractmethod
    def presign_part_upload(self, session_id: str, object_key: str, part_number: int, ttl_seconds: int) -> str:
        """Return a time-limited URL for uploading one part."""

    @abstractmethod
    def upload_part(self, session_id: str, object_key: str, part_number: int, data: bytes) -> str:
        """Upload part bytes and return the store-assigned ETag."""

    @abstractmethod
    def list_committed_parts(self, session_id: str, object_key: str) -> List[UploadPartInfo]:
        """Parts the store holds for the session, sorted by part number."""

    @abstractmethod
    def complete(self, session_id: str, object_key: str, parts: Sequence[PartETag]) -> str:
        """Assemble the parts into the final object and return its ETag."""

    @abstractmethod
    def abort(self, session_id: str, object_key: str) -> bool:
        """Abort the session. Returns False when the session was already gone."""

    @abstractmethod
    def stat(self, object_key: str) -> ObjectStat:
        """Size and ETag of a stored object."""

    @abstractmethod
    def presign_download(self, object_key: str, ttl_seconds: int) -> str:
        """Return a time-limited download URL."""


def _error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


class S3ObjectStoreGateway(ObjectStoreGateway):
    """boto3 implementation for MinIO / S3"""

    def __init__(self, config: Optional[Settings] = None, s3_client=None):
        """
        Initialize the S3 client

        Args:
            config: Settings providing endpoint, credentials and bucket
            s3_client: Pre-built boto3 client (tests inject a stubbed one)
        """
        config = config or default_settings
        self.bucket = config.S3_BUCKET
        self.s3_client = s3_client or boto3.client(
            "s3",
            endpoint_url=config.S3_ENDPOINT,
            aws_access_key_id=config.S3_ACCESS_KEY,
            aws_secret_access_key=config.S3_SECRET_KEY,
            region_name=config.S3_REGION,
            config=BotoConfig(
                signature_version="s3v4",
                s3={"addressing_style": "path" if config.S3_PATH_STYLE_ACCESS else "auto"},
            ),
        )

    def ensure_bucket(self) -> bool:
        """Create the bucket if missing. Returns True when it was created."""
        try:
            self.s3_client.create_bucket(Bucket=self.bucket)
            logger.info(f"Bucket '{self.bucket}' created successfully")
            return True
        except ClientError as e:
            if _error_code(e) in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                logger.info(f"Bucket '{self.bucket}' already exists")
                return False
            logger.error(f"Error creating bucket: {e}")
            raise StoreError(f"Failed to create bucket {self.bucket}") from e

    def create_session(self, object_key: str, content_type: str) -> str:
        try:
            response = self.s3_client.create_multipart_upload(
                Bucket=self.bucket,
                Key=object_key,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to create multipart upload for {object_key}: {e}")
            raise StoreError(f"Failed to open upload session: {e}") from e
        upload_id = response["UploadId"]
        logger.info(f"Multipart upload initialized with uploadId: {upload_id}, objectKey: {object_key}")
        return upload_id

    def presign_part_upload(self, session_id: str, object_key: str, part_number: int, ttl_seconds: int) -> str:
        try:
            return self.s3_client.generate_presigned_url(
                "upload_part",
                Params={
                    "Bucket": self.bucket,
                    "Key": object_key,
                    "UploadId": session_id,
                    "PartNumber": part_number,
                },
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned URL for part {part_number} of uploadId: {session_id}")
            raise StoreError(f"Failed to generate presigned URL for part {part_number}") from e

    def upload_part(self, session_id: str, object_key: str, part_number: int, data: bytes) -> str:
        try:
            response = self.s3_client.upload_part(
                Bucket=self.bucket,
                Key=object_key,
                UploadId=session_id,
                PartNumber=part_number,
                Body=data,
                ContentLength=len(data),
            )
        except ClientError as e:
            if _error_code(e) in _NO_SUCH_UPLOAD:
                raise NotFoundError(f"Upload session not found: {session_id}") from e
            raise StoreError(f"Failed to upload part {part_number}: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Failed to upload part {part_number}: {e}") from e
        return response["ETag"]

    def list_committed_parts(self, session_id: str, object_key: str) -> List[UploadPartInfo]:
        parts: List[UploadPartInfo] = []
        paginator = self.s3_client.get_paginator("list_parts")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Key=object_key, UploadId=session_id):
                for part in page.get("Parts", []):
                    parts.append(UploadPartInfo(
                        part_number=part["PartNumber"],
                        etag=part["ETag"],
                        size_bytes=part["Size"],
                    ))
        except ClientError as e:
            if _error_code(e) in _NO_SUCH_UPLOAD:
                logger.warning(f"Upload not found for uploadId: {session_id}, objectKey: {object_key}")
                raise NotFoundError("Upload not found or has been completed") from e
            logger.error(f"Failed to list parts for uploadId: {session_id}: {e}")
            raise StoreError(f"Failed to retrieve upload status: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Failed to retrieve upload status: {e}") from e

        parts.sort(key=lambda p: p.part_number)
        return parts

    def complete(self, session_id: str, object_key: str, parts: Sequence[PartETag]) -> str:
        try:
            response = self.s3_client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=object_key,
                UploadId=session_id,
                MultipartUpload={
                    "Parts": [{"ETag": p.etag, "PartNumber": p.part_number} for p in parts]
                },
            )
        except ClientError as e:
            if _error_code(e) in _NO_SUCH_UPLOAD:
                raise NotFoundError(f"Upload session not found: {session_id}") from e
            raise StoreError(f"Failed to complete upload: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Failed to complete upload: {e}") from e
        logger.info(f"Multipart upload completed successfully with ETag: {response.get('ETag')}")
        return response.get("ETag")

    def abort(self, session_id: str, object_key: str) -> bool:
        try:
            self.s3_client.abort_multipart_upload(
                Bucket=self.bucket,
                Key=object_key,
                UploadId=session_id,
            )
        except ClientError as e:
            if _error_code(e) in _NO_SUCH_UPLOAD:
                logger.warning(f"Upload not found for abort operation, uploadId: {session_id}, objectKey: {object_key}")
                return False
            logger.error(f"Failed to abort upload for uploadId: {session_id}: {e}")
            raise StoreError(f"Failed to abort upload: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Failed to abort upload: {e}") from e
        logger.info(f"Upload {session_id} aborted, all parts removed from storage")
        return True

    def stat(self, object_key: str) -> ObjectStat:
        try:
            head = self.s3_client.head_object(Bucket=self.bucket, Key=object_key)
        except ClientError as e:
            if _error_code(e) in _NO_SUCH_KEY:
                raise NotFoundError(f"Object not found: {object_key}") from e
            raise StoreError(f"Failed to read object metadata: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Failed to read object metadata: {e}") from e
        return ObjectStat(size_bytes=head["ContentLength"], integrity_tag=head.get("ETag"))

    def presign_download(self, object_key: str, ttl_seconds: int) -> str:
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": object_key},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate download URL for objectKey: {object_key}")
            raise StoreError("Failed to generate download URL") from e
