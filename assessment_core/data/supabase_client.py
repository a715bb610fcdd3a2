# =============================================================================
# assessment_core/data/supabase_client.py
# Supabase Client Configuration for the sync core
# Table reads/writes (PostgREST) and attachment storage (Storage + public URLs)
# =============================================================================

from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from supabase import AsyncClient, acreate_client

from assessment_core.config import Settings
from assessment_core.logging import get_logger

logger = get_logger(__name__)


async def create_supabase_client(settings: Settings) -> AsyncClient:
    """
    Initialize and return an async Supabase client.

    Args:
        settings: Settings carrying ``supabase_url`` and ``supabase_key``

    Returns:
        AsyncClient instance

    Raises:
        ConfigurationError: if credentials are missing
    """
    settings.require_remote()
    client = await acreate_client(settings.supabase_url, settings.supabase_key)
    logger.info(f"Supabase client created for {settings.supabase_url}")
    return client


class RemoteStore:
    """
    Generic table gateway over the async Supabase client.

    Errors from PostgREST are not swallowed here; callers decide whether a
    failure aborts a refresh or is merely logged.
    """

    def __init__(self, client: AsyncClient, page_size: int = 1000):
        """
        Args:
            client: Async Supabase client
            page_size: Rows per ranged request
        """
        self.client = client
        self.page_size = page_size

    async def fetch_all(self, table: str, order_by: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Fetch ALL rows of a table (handles the PostgREST row cap).

        Args:
            table: Table name
            order_by: Optional column to order by

        Returns:
            List of row dicts in wire (snake_case) shape
        """
        all_data: List[Dict[str, Any]] = []
        offset = 0

        while True:
            query = self.client.table(table).select("*")
            if order_by:
                query = query.order(order_by)

            response = await query.range(offset, offset + self.page_size - 1).execute()
            batch = response.data or []
            all_data.extend(batch)

            # Fewer than a full page means we've reached the end
            if len(batch) < self.page_size:
                break
            offset += self.page_size

        logger.debug(f"Fetched {len(all_data)} rows from {table}")
        return all_data

    async def upsert(self, table: str, row: Dict[str, Any]) -> None:
        """Insert or replace one row by primary key."""
        await self.client.table(table).upsert(row).execute()

    async def delete_ids(self, table: str, ids: Sequence[str]) -> None:
        """Delete rows whose id is in ``ids``."""
        if not ids:
            return
        await self.client.table(table).delete().in_("id", list(ids)).execute()

    async def select_ids(self, table: str, column: str, values: Sequence[str]) -> List[str]:
        """Ids of rows whose ``column`` is in ``values``."""
        if not values:
            return []
        response = await (
            self.client.table(table)
            .select("id")
            .in_(column, list(values))
            .execute()
        )
        return [row["id"] for row in response.data or []]


class BlobStore:
    """
    Attachment bucket access.

    Uploads and deletes go through Supabase Storage; reads go through the
    object's public URL, which is also the local cache key.
    """

    def __init__(
        self,
        client: AsyncClient,
        bucket: str = "training_materials",
        timeout: float = 30.0,
    ):
        self.client = client
        self.bucket = bucket
        self.timeout = timeout

    async def public_url(self, path: str) -> str:
        """Public locator of an object path inside the bucket, as Storage builds it."""
        return await self.client.storage.from_(self.bucket).get_public_url(path)

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        await self.client.storage.from_(self.bucket).upload(
            path,
            data,
            file_options={"content-type": content_type},
        )

    async def remove(self, paths: Sequence[str]) -> None:
        await self.client.storage.from_(self.bucket).remove(list(paths))

    async def download(self, locator: str) -> Tuple[bytes, str]:
        """
        GET a public locator.

        Returns:
            ``(payload, content_type)``

        Raises:
            httpx.HTTPError: on transport errors or non-2xx responses
        """
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as http:
            response = await http.get(locator)
            response.raise_for_status()
            content_type = response.headers.get("content-type", "application/octet-stream")
            return response.content, content_type
