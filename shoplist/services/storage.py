"""S3 storage service for item photos."""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from shoplist.config import get_settings
from shoplist.errors import BlobNotFoundError, BlobStoreError

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class BlobStore(ABC):
    """Photo storage used by the sync layer."""

    @abstractmethod
    async def upload(self, data: bytes, suggested_path: str, content_type: str = "image/jpeg") -> str:
        """Store bytes and return a reference for `resolve_url`."""

    @abstractmethod
    async def resolve_url(self, ref: str) -> str:
        """Public URL of an uploaded blob. Raises BlobNotFoundError if not visible yet."""

    @abstractmethod
    async def delete_by_url(self, url: str) -> None:
        """Delete the blob behind a URL."""

    def owns(self, url: str) -> bool:
        """Whether `url` points into this store. Photos from elsewhere are never deleted."""
        return bool(url)


def guess_extension(content_type: str) -> str:
    # Determine file extension
    if "png" in content_type:
        return "png"
    if "webp" in content_type:
        return "webp"
    if "gif" in content_type:
        return "gif"
    return "jpg"


def new_photo_path(content_type: str = "image/jpeg") -> str:
    """Key for a new item photo: items/{uuid}.{ext}."""
    return f"items/{uuid.uuid4()}.{guess_extension(content_type)}"


class S3BlobStore(BlobStore):
    """
    Stores item photos in S3.

    Photos are stored with the pattern: items/{uuid}.{ext}
    and served from https://{bucket}.s3.{region}.amazonaws.com/{key}
    (public access is controlled by bucket policy, not ACL).
    """

    def __init__(self, client=None, bucket_name: Optional[str] = None, region: Optional[str] = None):
        self._client = client
        self._bucket_name = bucket_name
        self._region = region

    @property
    def client(self):
        """Lazy-load S3 client."""
        if self._client is None:
            settings = get_settings()
            if not settings.s3_enabled:
                raise BlobStoreError("S3 is not configured")
            self._client = boto3.client(
                "s3",
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
                region_name=settings.aws_region,
            )
        return self._client

    @property
    def bucket_name(self) -> Optional[str]:
        return self._bucket_name or get_settings().s3_bucket_name

    @property
    def region(self) -> str:
        return self._region or get_settings().aws_region

    @property
    def base_url(self) -> str:
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/"

    def key_from_url(self, url: str) -> Optional[str]:
        # URL format: https://bucket.s3.region.amazonaws.com/key
        if ".amazonaws.com/" not in (url or ""):
            return None
        return url.split(".amazonaws.com/", 1)[-1]

    def owns(self, url: str) -> bool:
        # Only photos in our bucket; barcode lookups store Open Food Facts URLs
        return bool(url) and url.startswith(self.base_url)

    async def upload(self, data: bytes, suggested_path: str, content_type: str = "image/jpeg") -> str:
        key = suggested_path or new_photo_path(content_type)
        print(f"📤 Uploading photo to S3: {key} ({len(data)} bytes)")
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except ClientError as e:
            print(f"❌ Failed to upload to S3: {e}")
            raise BlobStoreError(f"Upload failed: {e}") from e
        return key

    async def resolve_url(self, ref: str) -> str:
        key = self.key_from_url(ref) or ref
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in NOT_FOUND_CODES:
                raise BlobNotFoundError(key) from e
            raise BlobStoreError(f"Could not resolve {key}: {e}") from e
        url = f"{self.base_url}{key}"
        print(f"✅ Photo available: {url}")
        return url

    async def delete_by_url(self, url: str) -> None:
        key = self.key_from_url(url)
        if key is None:
            raise BlobStoreError(f"Not an S3 URL: {url}")
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            raise BlobStoreError(f"Delete failed for {key}: {e}") from e
        print(f"🗑️ Photo deleted: {key}")
