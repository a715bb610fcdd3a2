# =============================================================================
# tests/unit/test_supabase_client.py
# Unit Tests for the Supabase table and storage gateways
# =============================================================================

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from assessment_core.data.supabase_client import BlobStore, RemoteStore


class TestRemoteStore:

    def test_fetch_all_pages_until_short_batch(self, mock_supabase):
        pages = [
            MagicMock(data=[{"id": "1"}, {"id": "2"}]),
            MagicMock(data=[{"id": "3"}]),
        ]
        ranged = mock_supabase.table.return_value.select.return_value.range
        ranged.return_value.execute = AsyncMock(side_effect=pages)

        rows = asyncio.run(RemoteStore(mock_supabase, page_size=2).fetch_all("staff"))

        assert [r["id"] for r in rows] == ["1", "2", "3"]
        assert [c.args for c in ranged.call_args_list] == [(0, 1), (2, 3)]

    def test_fetch_errors_propagate(self, mock_supabase):
        ranged = mock_supabase.table.return_value.select.return_value.range
        ranged.return_value.execute = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(ConnectionError):
            asyncio.run(RemoteStore(mock_supabase).fetch_all("staff"))

    def test_upsert(self, mock_supabase):
        asyncio.run(RemoteStore(mock_supabase).upsert("staff", {"id": "s1"}))
        mock_supabase.table.assert_called_with("staff")
        mock_supabase.table.return_value.upsert.assert_called_once_with({"id": "s1"})

    def test_delete_ids(self, mock_supabase):
        store = RemoteStore(mock_supabase)
        asyncio.run(store.delete_ids("staff", ["s1", "s2"]))
        mock_supabase.table.return_value.delete.return_value.in_.assert_called_once_with("id", ["s1", "s2"])

    def test_empty_delete_is_a_no_op(self, mock_supabase):
        asyncio.run(RemoteStore(mock_supabase).delete_ids("staff", []))
        mock_supabase.table.assert_not_called()

    def test_select_ids(self, mock_supabase):
        selected = mock_supabase.table.return_value.select.return_value.in_
        selected.return_value.execute = AsyncMock(return_value=MagicMock(data=[{"id": "a1"}]))

        ids = asyncio.run(RemoteStore(mock_supabase).select_ids("assessments", "staff_id", ["s1"]))

        assert ids == ["a1"]
        selected.assert_called_once_with("staff_id", ["s1"])


class TestBlobStore:

    def test_public_url_comes_from_storage_client(self, mock_supabase):
        store = BlobStore(mock_supabase)
        url = asyncio.run(store.public_url("1-b1.png"))

        assert url == "https://x.supabase.co/storage/v1/object/public/training_materials/1-b1.png"
        mock_supabase.storage.from_.assert_called_with("training_materials")
        mock_supabase.storage.from_.return_value.get_public_url.assert_awaited_once_with("1-b1.png")

    def test_upload_sets_content_type(self, mock_supabase):
        store = BlobStore(mock_supabase)
        asyncio.run(store.upload("1-b1.png", b"png", "image/png"))

        mock_supabase.storage.from_.assert_called_with("training_materials")
        mock_supabase.storage.from_.return_value.upload.assert_awaited_once_with(
            "1-b1.png", b"png", file_options={"content-type": "image/png"}
        )

    def test_remove(self, mock_supabase):
        store = BlobStore(mock_supabase)
        asyncio.run(store.remove(["1-b1.png"]))
        mock_supabase.storage.from_.return_value.remove.assert_awaited_once_with(["1-b1.png"])
