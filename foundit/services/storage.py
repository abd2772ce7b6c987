"""
Image storage for post photos: S3-compatible (Cloudflare R2) and in-memory.
"""

from __future__ import annotations

import io
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, UnidentifiedImageError

from foundit.errors import UploadError

logger = logging.getLogger(__name__)

MAX_UPLOAD_SIZE_MB = 5
MAX_UPLOAD_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024
FOLDER = "uploads"


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    filename: str
    content_type: str


@dataclass(frozen=True)
class UploadedImage:
    url: Optional[str]
    ref: str


class ImageStorage(Protocol):
    """Single request/response upload, no retry or resume."""

    def upload_image(self, data: bytes, filename: str, content_type: str) -> UploadedImage:
        ...

    def delete_image(self, ref: str) -> None:
        ...

    def url_for(self, ref: str) -> Optional[str]:
        """Short-lived read URL for a stored object, signed at read time."""
        ...


def validate_image(data: bytes, content_type: str) -> None:
    if not content_type or not content_type.startswith("image/"):
        raise UploadError("Only image files can be uploaded")

    if len(data) > MAX_UPLOAD_BYTES:
        raise UploadError(f"Image exceeds {MAX_UPLOAD_SIZE_MB}MB limit")

    if not data:
        raise UploadError("Image is empty")


def compress_image(data: bytes, max_width=1400, quality=80):
    try:
        img = Image.open(io.BytesIO(data))
        img = img.convert("RGB")
    except Image.DecompressionBombError as e:
        raise UploadError("Image dimensions are too large") from e
    except (UnidentifiedImageError, OSError) as e:
        raise UploadError(f"Could not read image: {e}") from e

    # Resize while keeping aspect ratio
    w, h = img.size
    if w > max_width:
        new_height = int(h * (max_width / w))
        img = img.resize((max_width, new_height), Image.LANCZOS)

    # Try WebP first
    buffer = io.BytesIO()

    try:
        img.save(buffer, format="WEBP", quality=quality, method=6)
        ext = "webp"
    except (OSError, KeyError) as e:
        logger.warning("WebP failed, falling back to JPEG: %s", e)

        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=80, optimize=True)
        ext = "jpg"

    buffer.seek(0)
    return buffer, ext


def object_key(original_name: str, ext: str) -> str:
    base = os.path.splitext(os.path.basename(original_name or "image"))[0] or "image"

    ts = int(datetime.now(timezone.utc).timestamp())
    return f"{FOLDER}/{base}-{ts}-{uuid.uuid4().hex[:8]}.{ext}"


@dataclass
class S3ImageStorage:
    """S3-compatible storage (Cloudflare R2) with presigned read URLs."""

    bucket: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    url_expires_in: int = 3600

    def __post_init__(self):
        self._client = boto3.client(
            service_name="s3",
            endpoint_url=self.endpoint,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name="auto",
        )

    def upload_image(self, data: bytes, filename: str, content_type: str) -> UploadedImage:
        validate_image(data, content_type)
        buffer, ext = compress_image(data)
        key = object_key(filename, ext)

        try:
            self._client.upload_fileobj(buffer, self.bucket, key)
        except ClientError as e:
            message = e.response.get("Error", {}).get("Message") or str(e)
            raise UploadError(f"Upload failed: {message}") from e
        except BotoCoreError as e:
            raise UploadError(f"Upload failed: {e}") from e

        return UploadedImage(url=self.url_for(key), ref=key)

    def delete_image(self, ref: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=ref)
        except (ClientError, BotoCoreError) as e:
            raise UploadError(f"Could not delete image {ref}: {e}") from e

    def url_for(self, ref: str) -> Optional[str]:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": ref},
                ExpiresIn=self.url_expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning("Could not sign URL for %s: %s", ref, e)
            return None


@dataclass
class InMemoryImageStorage:
    """Test double for image uploads."""

    base_url: str = "https://example.test/images"
    stored_objects: dict = field(default_factory=dict)

    def upload_image(self, data: bytes, filename: str, content_type: str) -> UploadedImage:
        validate_image(data, content_type)
        key = object_key(filename, content_type.split("/", 1)[1] or "bin")
        self.stored_objects[key] = data
        return UploadedImage(url=self.url_for(key), ref=key)

    def delete_image(self, ref: str) -> None:
        self.stored_objects.pop(ref, None)

    def url_for(self, ref: str) -> Optional[str]:
        return f"{self.base_url}/{ref}"
