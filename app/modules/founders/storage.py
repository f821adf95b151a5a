"""Supabase Storage for founder avatar images."""
import logging
from typing import Optional, Set

import httpx
from storage3.utils import StorageException
from supabase import Client

from app.config import settings
from app.core.errors import (
    PolicyDeniedError, StorageConfigurationError, StoreError, TransientUnavailable, ValidationError
)

logger = logging.getLogger(__name__)

AVATAR_CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

# Bucket names confirmed to exist in this process
_VERIFIED_BUCKETS: Set[str] = set()


class AvatarStorage:
    """
    Avatar uploads into the single configured bucket.

    The bucket name comes from settings.avatar_bucket only. It is checked
    with get_bucket before the first upload and a missing bucket is a
    configuration error; no alternative names are tried. A successful check
    holds for the whole process, so the service-role check at startup covers
    the per-request clients built from caller tokens.
    """

    def __init__(self, supabase: Client, bucket_name: Optional[str] = None):
        self.bucket_name = bucket_name or settings.avatar_bucket
        if not self.bucket_name:
            raise StorageConfigurationError("AVATAR_BUCKET must be configured")
        self.supabase = supabase

    def verify_bucket(self, force: bool = False) -> None:
        """Confirm the bucket exists. `force` repeats the lookup even if already confirmed."""
        if not force and self.bucket_name in _VERIFIED_BUCKETS:
            return
        try:
            self.supabase.storage.get_bucket(self.bucket_name)
        except StorageException as e:
            _VERIFIED_BUCKETS.discard(self.bucket_name)
            raise StorageConfigurationError(
                f"Avatar bucket '{self.bucket_name}' is not available: {e}"
            ) from e
        except httpx.TransportError as e:
            raise TransientUnavailable(f"Storage unreachable: {e}") from e
        _VERIFIED_BUCKETS.add(self.bucket_name)
        logger.info("Avatar bucket '%s' verified", self.bucket_name)

    def object_key(self, founder_id: str, content_type: str) -> str:
        return f"{founder_id}/avatar.{AVATAR_CONTENT_TYPES[content_type]}"

    def upload_avatar(self, founder_id: str, file_content: bytes, content_type: str) -> str:
        """Upload (overwriting) the founder's avatar and return its public URL."""
        if content_type not in AVATAR_CONTENT_TYPES:
            raise ValidationError(
                f"Unsupported avatar type {content_type!r}; expected one of {sorted(AVATAR_CONTENT_TYPES)}"
            )
        if not file_content:
            raise ValidationError("Avatar file is empty")
        if len(file_content) > settings.avatar_max_bytes:
            raise ValidationError(f"Avatar exceeds {settings.avatar_max_bytes} bytes")
        self.verify_bucket()
        key = self.object_key(founder_id, content_type)
        bucket = self.supabase.storage.from_(self.bucket_name)
        try:
            bucket.upload(key, file_content, {"content-type": content_type, "upsert": "true"})
        except StorageException as e:
            logger.error(f"Failed to upload avatar to {self.bucket_name}/{key}: {str(e)}")
            if "policy" in str(e).lower():
                raise PolicyDeniedError(f"Storage policy rejected avatar upload for {founder_id}") from e
            raise StoreError(f"Avatar upload failed: {e}") from e
        except httpx.TransportError as e:
            raise TransientUnavailable(f"Storage unreachable: {e}") from e
        return bucket.get_public_url(key)
