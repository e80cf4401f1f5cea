"""
Artifact store backed by the MinIO bucket (S3 API)
"""
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Optional
import io
import logging
import re

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.exceptions import NotFound, StoreUnavailable, ValidationFailed
from app.modules.files.schemas import ArtifactCategory, ArtifactKind, DownloadedArtifact

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "NoSuchObject", "NotFound", "404"}
_MISSING_BUCKET_CODES = {"NoSuchBucket", "NotFound", "404"}
_DANGEROUS_FILENAME = re.compile(r"\.\.|\.(exe|sh|bat|cmd|php|js)(\.|$)", re.IGNORECASE)


def safe_file_name(filename: str) -> str:
    """Reduce a client-supplied name to its base name"""
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    if not name or name in (".", ".."):
        raise ValidationFailed(f"Invalid file name: {filename!r}")
    return name


def validate_upload(
    filename: str,
    content_type: str,
    size: int,
    allowed_types: list,
    allowed_extensions: Optional[list] = None,
    max_size: int = settings.MAX_ATTACHMENT_SIZE,
) -> None:
    """Reject uploads by MIME type, extension, size and suspicious names"""
    if size <= 0:
        raise ValidationFailed("Uploaded file is empty")
    if size > max_size:
        raise ValidationFailed(f"File exceeds the maximum size of {max_size // (1024 * 1024)}MB")
    if content_type not in allowed_types:
        raise ValidationFailed(f"File type {content_type} not allowed")
    if allowed_extensions is not None:
        extension = PurePosixPath(filename or "").suffix.lower()
        if extension not in allowed_extensions:
            raise ValidationFailed("Invalid file extension")
    if _DANGEROUS_FILENAME.search(filename or ""):
        raise ValidationFailed("Invalid filename. Potentially dangerous file detected")


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class ArtifactStore:
    """Uniform put/get/delete over path-keyed objects in one bucket"""

    def __init__(self, client=None, bucket_name: Optional[str] = None):
        self.client = client or boto3.client(
            "s3",
            endpoint_url=settings.minio_url,
            aws_access_key_id=settings.MINIO_ACCESS_KEY,
            aws_secret_access_key=settings.MINIO_SECRET_KEY,
            region_name=settings.MINIO_REGION,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                connect_timeout=5,
                read_timeout=30,
                retries={"max_attempts": 2},
            ),
        )
        self.bucket_name = bucket_name or settings.MINIO_BUCKET_NAME
        self._bucket_ready = False

    def _ensure_bucket_exists(self):
        """Ensure the bucket exists, create if it doesn't"""
        if self._bucket_ready:
            return
        try:
            try:
                self.client.head_bucket(Bucket=self.bucket_name)
            except ClientError as e:
                if _error_code(e) not in _MISSING_BUCKET_CODES:
                    raise
                self.client.create_bucket(Bucket=self.bucket_name)
                logger.info(f"Created artifact bucket: {self.bucket_name}")
            self._bucket_ready = True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Artifact bucket setup error: {e}")
            raise StoreUnavailable("File storage service unavailable") from e

    @staticmethod
    def build_path(
        kind: ArtifactKind,
        owner_id: int,
        filename: str,
        category: Optional[ArtifactCategory] = None,
    ) -> str:
        """{kind}/{category}/{owner_id}/{filename}, category omitted when not given"""
        parts = [ArtifactKind(kind).value]
        if category:
            parts.append(ArtifactCategory(category).value)
        parts.extend([str(owner_id), safe_file_name(filename)])
        return "/".join(parts)

    def upload(
        self,
        content: bytes,
        filename: str,
        kind: ArtifactKind,
        owner_id: int,
        content_type: str,
        category: Optional[ArtifactCategory] = None,
    ) -> str:
        path = self.build_path(kind, owner_id, filename, category)
        self._ensure_bucket_exists()
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=path,
                Body=io.BytesIO(content),
                ContentLength=len(content),
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Artifact upload failed for {path}: {e}")
            raise StoreUnavailable(f"Could not upload {filename}") from e

        logger.info(f"Uploaded artifact {path} ({len(content)} bytes)")
        return path

    def download(self, path: str) -> DownloadedArtifact:
        self._ensure_bucket_exists()
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=path)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                raise NotFound(f"File not found: {PurePosixPath(path).name}") from e
            logger.error(f"Artifact download failed for {path}: {e}")
            raise StoreUnavailable("Could not download file") from e
        except BotoCoreError as e:
            logger.error(f"Artifact download failed for {path}: {e}")
            raise StoreUnavailable("Could not download file") from e

        body = response["Body"]
        try:
            content = body.read()
        except BotoCoreError as e:
            logger.error(f"Artifact stream interrupted for {path}: {e}")
            raise StoreUnavailable("Could not download file") from e
        finally:
            body.close()

        return DownloadedArtifact(
            content=content,
            content_type=response.get("ContentType") or "application/octet-stream",
            content_length=len(content),
            file_name=PurePosixPath(path).name,
        )

    def delete(self, path: str) -> None:
        """Idempotent: deleting a missing object succeeds"""
        self._ensure_bucket_exists()
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=path)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                logger.info(f"Artifact {path} already absent")
                return
            logger.error(f"Artifact delete failed for {path}: {e}")
            raise StoreUnavailable(f"Could not delete {path}") from e
        except BotoCoreError as e:
            logger.error(f"Artifact delete failed for {path}: {e}")
            raise StoreUnavailable(f"Could not delete {path}") from e
        logger.info(f"Deleted artifact {path}")

    def exists(self, path: str) -> bool:
        self._ensure_bucket_exists()
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=path)
            return True
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return False
            raise StoreUnavailable(f"Could not stat {path}") from e
        except BotoCoreError as e:
            raise StoreUnavailable(f"Could not stat {path}") from e


@lru_cache()
def get_artifact_store() -> ArtifactStore:
    return ArtifactStore()
