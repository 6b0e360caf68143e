"""Business logic services."""

from .images import (
    JPEG_CONTENT_TYPE,
    MAX_IMAGE_DIMENSION,
    UploadTooLargeError,
    process_image_bytes,
    read_upload_file,
)
from .rate_limiter import (
    ClientIdentifier,
    RateLimitMiddleware,
    RateLimiter,
    build_rate_limiter,
)
from .storage import MediaStore, build_minio_client, ensure_bucket, new_avatar_key

__all__ = [
    "MediaStore",
    "build_minio_client",
    "ensure_bucket",
    "new_avatar_key",
    "process_image_bytes",
    "read_upload_file",
    "MAX_IMAGE_DIMENSION",
    "JPEG_CONTENT_TYPE",
    "UploadTooLargeError",
    "ClientIdentifier",
    "RateLimiter",
    "RateLimitMiddleware",
    "build_rate_limiter",
]
