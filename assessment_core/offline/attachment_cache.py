# =============================================================================
# assessment_core/offline/attachment_cache.py
# Cache-aside store for binary materials (images, documents)
# =============================================================================
"""
AttachmentCache - local copies of bucket objects keyed by public URL.

Read path:  local files table → public URL download → write-through → return
Write path: bucket upload → local put
Delete:     bucket remove → local invalidate (even if the remove failed,
            unless configured otherwise)
"""

from __future__ import annotations
import base64
import time
from dataclasses import dataclass
from typing import Dict, Optional

from assessment_core.errors import AttachmentError, error_boundary
from assessment_core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class Attachment:
    """Binary payload plus its MIME type."""
    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"

    @classmethod
    def from_data_url(cls, data_url: str) -> Attachment:
        """Parse ``data:<mime>;base64,<payload>``."""
        header, _, payload = data_url.partition(",")
        if not header.startswith("data:") or not header.endswith(";base64"):
            raise ValueError("Not a base64 data URL")
        content_type = header[len("data:"):-len(";base64")] or DEFAULT_CONTENT_TYPE
        return cls(base64.b64decode(payload), content_type)


def object_path(entity_id: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Bucket path ``{timestamp}-{entityId}.{extension}``."""
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    extension = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
    return f"{stamp}-{entity_id}.{extension}"


class AttachmentCache:
    """
    Usage:
        cache = AttachmentCache(local_db, blob_store)
        path = await cache.upload("banner-1", "photo.png", data, "image/png")
        attachment = await cache.get_material(path)
    """

    def __init__(self, local_db, blobs, invalidate_on_remote_failure: bool = True):
        """
        Args:
            local_db: LocalDatabase holding the files table
            blobs: BlobStore (``public_url``, ``upload``, ``remove``, ``download``)
            invalidate_on_remote_failure: Drop the local copy when the bucket
                delete fails
        """
        self.local_db = local_db
        self.blobs = blobs
        self.invalidate_on_remote_failure = invalidate_on_remote_failure
        # locator -> number of deletes, checked by downloads in flight
        self._invalidations: Dict[str, int] = {}

    async def locator_for(self, path: str) -> str:
        return await self.blobs.public_url(path)

    def put(self, locator: str, payload: Attachment) -> None:
        self.local_db.put_file(locator, payload.data, payload.content_type)

    def peek(self, locator: str) -> Optional[Attachment]:
        """Local lookup only; never touches the network."""
        cached = self.local_db.get_file(locator)
        if cached is None:
            return None
        data, content_type = cached
        return Attachment(data, content_type or DEFAULT_CONTENT_TYPE)

    async def get(self, locator: str) -> Optional[Attachment]:
        """
        Cached payload for ``locator``, downloading it on a miss.

        Returns:
            Attachment, or None when the download failed or the entry was
            deleted while it was downloading
        """
        cached = self.peek(locator)
        if cached is not None:
            return cached

        generation = self._invalidations.get(locator, 0)
        payload = await self._download(locator)
        if payload is None:
            return None

        # Deleted while downloading: the payload is already invalid
        if self._invalidations.get(locator, 0) != generation:
            logger.debug(f"Attachment {locator} deleted during download, not caching")
            return None

        self.put(locator, payload)
        logger.debug(f"Cached attachment {locator} ({len(payload.data)} bytes)")
        return payload

    @error_boundary(default_return=None, error_message="Error fetching attachment")
    async def _download(self, locator: str) -> Attachment:
        data, content_type = await self.blobs.download(locator)
        return Attachment(data, content_type or DEFAULT_CONTENT_TYPE)

    async def get_material(self, path: str) -> Optional[Attachment]:
        """Same as ``get`` for a bucket-relative path."""
        return await self.get(await self.locator_for(path))

    async def upload(self, entity_id: str, filename: str, data: bytes, content_type: str) -> str:
        """
        Upload a payload and prime the local cache with it.

        Returns:
            Bucket-relative path to store on the owning record

        Raises:
            AttachmentError: if the bucket upload failed
        """
        path = object_path(entity_id, filename)
        try:
            await self.blobs.upload(path, data, content_type)
        except Exception as e:
            logger.error(f"Error uploading file {path}: {e}")
            raise AttachmentError("Attachment upload failed", path=path) from e

        self.put(await self.locator_for(path), Attachment(data, content_type))
        logger.info(f"Uploaded attachment {path}")
        return path

    async def delete(self, path: str) -> bool:
        """
        Remove an object from the bucket and the local cache.

        Returns:
            True if the bucket delete succeeded
        """
        locator = await self.locator_for(path)
        try:
            await self.blobs.remove([path])
            removed = True
        except Exception as e:
            logger.error(f"Error deleting {path} from storage: {e}")
            removed = False

        if removed or self.invalidate_on_remote_failure:
            self._invalidations[locator] = self._invalidations.get(locator, 0) + 1
            self.local_db.delete_file(locator)
        return removed

    def all_cached(self) -> Dict[str, Attachment]:
        return {
            locator: Attachment(data, content_type or DEFAULT_CONTENT_TYPE)
            for locator, data, content_type in self.local_db.all_files()
        }

    def clear(self) -> None:
        self.local_db.clear_files()
