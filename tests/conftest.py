# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
import copy
import pytest
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from unittest.mock import AsyncMock, MagicMock

from assessment_core.config import Settings
from assessment_core.context import SyncContext
from assessment_core.data.schema import TABLES
from assessment_core.offline.local_database import LocalDatabase


# =============================================================================
# IN-MEMORY STORES
# =============================================================================

class FakeRemoteStore:
    """
    Stand-in for RemoteStore: one list of snake_case rows per table.

    ``fail`` names tables whose reads raise; ``fail_writes`` names tables whose
    upserts raise; ``hold`` (an asyncio.Event) makes reads started while it is
    set wait for it, after taking their snapshot.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {table: [] for table in TABLES}
        self.fail: Set[str] = set()
        self.fail_writes: Set[str] = set()
        self.fetch_counts: Dict[str, int] = {table: 0 for table in TABLES}
        self.upserts: List[Tuple[str, Dict[str, Any]]] = []
        self.deletes: List[Tuple[str, List[str]]] = []
        self.hold: Optional[asyncio.Event] = None

    async def fetch_all(self, table: str, order_by: Optional[str] = None) -> List[Dict[str, Any]]:
        self.fetch_counts[table] += 1
        if table in self.fail:
            raise ConnectionError(f"{table} unreachable")
        rows = copy.deepcopy(self.tables[table])
        hold = self.hold
        if hold is not None:
            await hold.wait()
        await asyncio.sleep(0)
        return rows

    async def upsert(self, table: str, row: Dict[str, Any]) -> None:
        if table in self.fail_writes:
            raise ConnectionError(f"{table} rejected write")
        self.upserts.append((table, copy.deepcopy(row)))
        rows = self.tables[table]
        for i, existing in enumerate(rows):
            if existing["id"] == row["id"]:
                rows[i] = copy.deepcopy(row)
                return
        rows.append(copy.deepcopy(row))

    async def delete_ids(self, table: str, ids: Sequence[str]) -> None:
        self.deletes.append((table, list(ids)))
        wanted = set(ids)
        self.tables[table] = [row for row in self.tables[table] if row["id"] not in wanted]

    async def select_ids(self, table: str, column: str, values: Sequence[str]) -> List[str]:
        wanted = set(values)
        return [row["id"] for row in self.tables[table] if row.get(column) in wanted]

    def row(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self.tables[table] if r["id"] == row_id), None)


class FakeBlobStore:
    """
    Stand-in for BlobStore backed by a dict of path -> (bytes, content type).

    ``gate`` (an asyncio.Event) makes downloads wait for it after reading the
    object.
    """

    BASE = "https://example.supabase.co/storage/v1/object/public/training_materials"

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.downloads: List[str] = []
        self.fail_upload = False
        self.fail_remove = False
        self.fail_download = False
        self.gate: Optional[asyncio.Event] = None

    def locator(self, path: str) -> str:
        return f"{self.BASE}/{path}"

    async def public_url(self, path: str) -> str:
        return self.locator(path)

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        if self.fail_upload:
            raise ConnectionError("upload failed")
        self.objects[path] = (data, content_type)

    async def remove(self, paths: Sequence[str]) -> None:
        if self.fail_remove:
            raise ConnectionError("remove failed")
        for path in paths:
            self.objects.pop(path, None)

    async def download(self, locator: str) -> Tuple[bytes, str]:
        self.downloads.append(locator)
        if self.fail_download:
            raise ConnectionError("download failed")
        path = locator[len(self.BASE) + 1:]
        if path not in self.objects:
            raise FileNotFoundError(locator)
        payload = self.objects[path]
        gate = self.gate
        if gate is not None:
            await gate.wait()
        return payload


# =============================================================================
# STORE FIXTURES
# =============================================================================

@pytest.fixture
def remote():
    """Empty in-memory remote store"""
    return FakeRemoteStore()


@pytest.fixture
def blobs():
    """Empty in-memory attachment bucket"""
    return FakeBlobStore()


@pytest.fixture
def local_db():
    """Throwaway SQLite store"""
    db = LocalDatabase(":memory:").initialize()
    yield db
    db.close()


@pytest.fixture
def settings(tmp_path):
    """Settings that never touch the real project directory"""
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_key="test-key",
        local_db_path=tmp_path / "test.db",
    )


@pytest.fixture
def context(settings, remote, blobs, local_db):
    """SyncContext wired to the in-memory stores"""
    return SyncContext.build(settings, remote=remote, blobs=blobs, local_db=local_db)


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_rows():
    """Flat snake_case rows for one hospital with a small subtree"""
    return {
        "hospitals": [
            {"id": "h1", "name": "Imam Reza", "province": "Khorasan", "city": "Mashhad",
             "supervisor_name": "Sara", "supervisor_national_id": "001",
             "supervisor_password": "pw"},
        ],
        "departments": [
            {"id": "d1", "hospital_id": "h1", "name": "ICU", "manager_name": "Ali",
             "manager_national_id": "002", "manager_password": "pw",
             "staff_count": 2, "bed_count": 10, "patient_education_materials": []},
        ],
        "staff": [
            {"id": "s1", "department_id": "d1", "name": "Maryam", "title": "Nurse",
             "national_id": "003"},
            {"id": "s2", "department_id": "d1", "name": "Reza", "title": "Nurse",
             "national_id": "004"},
        ],
        "assessments": [
            {"id": "a1", "staff_id": "s1", "month": "فروردین", "year": 1403,
             "skill_categories": [
                 {"name": "Care", "items": [{"description": "Vitals", "score": 3},
                                            {"description": "Hygiene", "score": 4}]},
             ],
             "supervisor_message": "", "manager_message": "", "min_score": 0,
             "max_score": 4, "exam_submissions": []},
        ],
        "work_logs": [
            {"id": "w1", "staff_id": "s2", "month": "فروردین", "year": 1403},
        ],
        "patients": [
            {"id": "p1", "department_id": "d1", "name": "Hassan", "national_id": "005",
             "chat_history": []},
        ],
        "needs_assessments": [
            {"id": "n1", "hospital_id": "h1", "month": "اردیبهشت", "year": 1403,
             "topics": [{"id": "t1", "title": "CPR", "description": "", "responses": []}]},
        ],
    }


@pytest.fixture
def seeded_remote(remote, sample_rows):
    """Remote store pre-loaded with sample_rows"""
    for table, rows in sample_rows.items():
        remote.tables[table] = copy.deepcopy(rows)
    return remote


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_supabase():
    """Mock async Supabase client"""
    mock_client = MagicMock()
    query = mock_client.table.return_value
    query.select.return_value.range.return_value.execute = AsyncMock(
        return_value=MagicMock(data=[])
    )
    query.upsert.return_value.execute = AsyncMock(return_value=MagicMock(data=[]))
    query.delete.return_value.in_.return_value.execute = AsyncMock(return_value=MagicMock(data=[]))
    query.select.return_value.in_.return_value.execute = AsyncMock(return_value=MagicMock(data=[]))

    bucket = mock_client.storage.from_.return_value
    bucket.upload = AsyncMock()
    bucket.remove = AsyncMock()
    bucket.get_public_url = AsyncMock(
        side_effect=lambda path: f"https://x.supabase.co/storage/v1/object/public/training_materials/{path}"
    )

    channel = MagicMock()
    channel.subscribe = AsyncMock()
    mock_client.channel.return_value = channel
    mock_client.remove_channel = AsyncMock()
    return mock_client

