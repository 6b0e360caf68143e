"""MinIO-backed media storage for uploaded avatars."""

from __future__ import annotations

import asyncio
import logging
from io import BytesIO
from typing import Any
from uuid import uuid4

from minio import Minio
from minio.error import S3Error

from core import Settings

logger = logging.getLogger(__name__)

AVATAR_KEY_PREFIX = "avatars/"


def build_minio_client(settings: Settings) -> Minio:
    """Return a MinIO client configured from ``settings``."""
    # Local development runs without TLS; production can override via endpoint/port.
    return Minio(
        settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_secure,
    )


def ensure_bucket(client: Any, bucket_name: str) -> None:
    """Ensure ``bucket_name`` exists."""
    if client.bucket_exists(bucket_name):  # pragma: no cover - network call
        return

    try:
        client.make_bucket(bucket_name)  # pragma: no cover - network call
    except S3Error as exc:  # pragma: no cover - handle race conditions
        allowed_codes = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}
        if exc.code not in allowed_codes:
            raise


def new_avatar_key() -> str:
    return f"{AVATAR_KEY_PREFIX}{uuid4().hex}.jpg"


class MediaStore:
    """Uploads avatar objects and maps them to their public URLs.

    A user's avatar reference is either a URL produced by ``public_url`` for
    an object this store uploaded, or an external URL (OAuth profile photo)
    that is never deleted.
    """

    def __init__(self, client: Any, bucket_name: str, public_base_url: str) -> None:
        self.client = client
        self.bucket_name = bucket_name
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "MediaStore":
        return cls(
            build_minio_client(settings),
            settings.minio_bucket,
            settings.media_public_base_url,
        )

    def public_url(self, object_key: str) -> str:
        return f"{self.public_base_url}/{object_key}"

    def owned_key(self, reference: str | None) -> str | None:
        """Object key behind ``reference`` when this store uploaded it."""
        if not reference:
            return None
        prefix = f"{self.public_base_url}/"
        if not reference.startswith(prefix):
            return None
        key = reference[len(prefix):]
        return key if key.startswith(AVATAR_KEY_PREFIX) else None

    def upload_object(self, object_key: str, data: bytes, content_type: str) -> None:
        ensure_bucket(self.client, self.bucket_name)
        self.client.put_object(
            self.bucket_name,
            object_key,
            data=BytesIO(data),
            length=len(data),
            content_type=content_type,
        )

    def delete_object(self, object_key: str) -> None:
        """Delete an object from the bucket when it exists."""
        try:
            self.client.remove_object(self.bucket_name, object_key)  # pragma: no cover - network call
        except S3Error as exc:  # pragma: no cover - network call
            allowed_codes = {"NoSuchKey", "NoSuchObject", "ResourceNotFound"}
            if exc.code not in allowed_codes:
                raise

    async def store_avatar(self, data: bytes, content_type: str) -> str:
        """Upload a processed avatar and return its public URL."""
        object_key = new_avatar_key()
        await asyncio.to_thread(self.upload_object, object_key, data, content_type)
        return self.public_url(object_key)

    async def discard(self, reference: str | None, *, reason: str) -> None:
        """Remove an owned avatar object; failures are logged, never raised."""
        object_key = self.owned_key(reference)
        if object_key is None:
            return
        try:
            await asyncio.to_thread(self.delete_object, object_key)
        except Exception as cleanup_error:
            logger.warning(
                "Failed to cleanup avatar object",
                extra={"avatar_key": object_key, "reason": reason},
                exc_info=cleanup_error,
            )
