"""Object storage for chat attachments and avatars.

Objects live in a local directory tree (one sub-directory per bucket) that
the application serves as static files under ``STORAGE_PUBLIC_URL``.
"""

from __future__ import annotations

import logging
import secrets
import time
from pathlib import Path, PurePosixPath

from wanderbuddy.core.errors import TransientError
from wanderbuddy.core.settings import settings

logger = logging.getLogger(__name__)

UPLOADS_BUCKET = "meetup-uploads"
AVATARS_BUCKET = "avatars"
COMMUNITY_NAMESPACE = "community"

# Stored objects are served by extension, so it must follow the validated type.
EXTENSIONS_BY_TYPE = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "application/pdf": "pdf",
    "text/plain": "txt",
}


class LocalStorage:
    """Bucketed file store rooted at ``root`` and published under ``public_base``."""

    def __init__(self, root: str | Path | None = None, public_base: str | None = None) -> None:
        self.root = Path(root or settings.storage_root)
        self.public_base = (public_base or settings.storage_public_url).rstrip("/")

    def _resolve(self, bucket: str, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid storage path: {path!r}")
        return self.root / bucket / Path(*relative.parts)

    def upload(self, bucket: str, path: str, data: bytes, content_type: str | None = None) -> str:
        """Write ``data`` to ``bucket/path`` and return its public URL.

        Raises:
            TransientError: The object could not be written.
        """
        target = self._resolve(bucket, path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            logger.error("Storage write failed for %s/%s: %s", bucket, path, exc)
            raise TransientError("Unable to upload file") from exc
        logger.debug("Stored %d bytes at %s/%s (%s)", len(data), bucket, path, content_type)
        return self.public_url(bucket, path)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_base}/{bucket}/{path}"

    def delete(self, bucket: str, path: str) -> None:
        target = self._resolve(bucket, path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Storage delete failed for %s/%s: %s", bucket, path, exc)


_storage: LocalStorage | None = None


def get_storage() -> LocalStorage:
    global _storage
    if _storage is None:
        _storage = LocalStorage()
    return _storage


def file_extension(content_type: str | None) -> str:
    return EXTENSIONS_BY_TYPE.get((content_type or "").lower(), "bin")


def _unique_suffix() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def attachment_path(meetup_id: int | None, user_id: str, content_type: str | None) -> str:
    """``<meetup_id|community>/<user>/<epoch_ms>-<random>.<ext>``"""
    namespace = COMMUNITY_NAMESPACE if meetup_id is None else str(meetup_id)
    return f"{namespace}/{user_id}/{_unique_suffix()}.{file_extension(content_type)}"


def avatar_path(user_id: str, content_type: str | None) -> str:
    return f"{user_id}-{_unique_suffix()}.{file_extension(content_type)}"
