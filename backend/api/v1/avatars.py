"""Avatar upload shared by registration and profile edits."""

from __future__ import annotations

import asyncio

from fastapi import UploadFile

from services import MediaStore, UploadTooLargeError, process_image_bytes, read_upload_file
from services.errors import PayloadTooLargeError, ValidationError


async def store_avatar_upload(avatar: UploadFile, *, media: MediaStore, max_bytes: int) -> str:
    """Normalise ``avatar`` to JPEG, upload it and return its public URL."""
    try:
        data = await read_upload_file(avatar, max_bytes)
        processed_bytes, content_type = await asyncio.to_thread(process_image_bytes, data)
    except UploadTooLargeError as exc:
        raise PayloadTooLargeError(str(exc)) from exc
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    return await media.store_avatar(processed_bytes, content_type)
