# =============================================================================
# tests/unit/test_sync_engine.py
# Unit Tests for the refresh / cache cycle
# =============================================================================

import asyncio
import pytest

from assessment_core.errors import RemoteFetchError
from assessment_core.offline.sync_engine import SyncEngine, SyncState


@pytest.fixture
def engine(seeded_remote, local_db):
    return SyncEngine(seeded_remote, local_db)


class TestRefresh:
    """Test the all-tables refresh"""

    def test_reads_every_table_once(self, engine, seeded_remote):
        asyncio.run(engine.refresh())
        assert set(seeded_remote.fetch_counts.values()) == {1}

    def test_returns_assembled_camel_case_tree(self, engine):
        hospitals = asyncio.run(engine.refresh())

        hospital = hospitals[0]
        assert hospital["supervisorName"] == "Sara"
        staff = hospital["departments"][0]["staff"][0]
        assert staff["assessments"][0]["skillCategories"][0]["items"][1]["score"] == 4

    def test_writes_through_to_local_store(self, engine, local_db):
        hospitals = asyncio.run(engine.refresh())

        assert local_db.load_hospitals() == hospitals
        assert local_db.get_setting(SyncEngine.LAST_SYNC_KEY) is not None

    def test_failed_table_aborts_everything(self, engine, seeded_remote, local_db):
        local_db.replace_hospitals([{"id": "old"}])
        seeded_remote.fail.add("staff")

        with pytest.raises(RemoteFetchError) as exc_info:
            asyncio.run(engine.refresh())

        assert exc_info.value.tables == ["staff"]
        assert local_db.load_hospitals() == [{"id": "old"}]
        assert engine.state.failure_count == 1

    def test_state_after_success(self, engine):
        asyncio.run(engine.refresh())
        state = engine.state
        assert not state.is_syncing
        assert not state.is_offline
        assert state.refresh_count == 1
        assert state.last_sync_success is not None


class TestRefreshOrCached:
    """Test offline fallback"""

    def test_falls_back_to_cache(self, engine, seeded_remote, local_db):
        cached = [{"id": "h0", "name": "Cached", "departments": []}]
        local_db.replace_hospitals(cached)
        seeded_remote.fail.add("hospitals")

        hospitals = asyncio.run(engine.refresh_or_cached())

        assert hospitals == cached
        assert engine.state.is_offline

    def test_timeout_falls_back_to_cache(self, seeded_remote, local_db):
        local_db.replace_hospitals([{"id": "h0"}])
        engine = SyncEngine(seeded_remote, local_db, sync_timeout=0.05)

        async def scenario():
            seeded_remote.hold = asyncio.Event()  # never set
            return await engine.refresh_or_cached()

        assert asyncio.run(scenario()) == [{"id": "h0"}]
        assert engine.state.is_offline
        assert engine.state.last_error == "refresh timed out"

    def test_recovers_from_offline(self, engine, seeded_remote):
        seeded_remote.fail.add("patients")
        asyncio.run(engine.refresh_or_cached())
        assert engine.state.is_offline

        seeded_remote.fail.clear()
        hospitals = asyncio.run(engine.refresh_or_cached())
        assert hospitals[0]["id"] == "h1"
        assert not engine.state.is_offline


class TestOverlappingRefreshes:
    """Test that a stale snapshot never overwrites a newer one"""

    @staticmethod
    async def _overtaken_refresh(engine, remote):
        """Hold one refresh mid-fetch, complete a newer one, then release."""
        remote.hold = asyncio.Event()
        older = asyncio.create_task(engine.refresh())
        while sum(remote.fetch_counts.values()) < len(remote.tables):
            await asyncio.sleep(0)

        remote.tables["hospitals"][0]["name"] = "Renamed"
        hold, remote.hold = remote.hold, None
        newer = await engine.refresh()

        hold.set()
        overtaken = await older
        return overtaken, newer

    def test_older_refresh_does_not_commit(self, engine, seeded_remote, local_db):
        overtaken, newer = asyncio.run(self._overtaken_refresh(engine, seeded_remote))

        assert newer[0]["name"] == "Renamed"
        assert overtaken[0]["name"] == "Renamed"
        assert local_db.load_hospitals()[0]["name"] == "Renamed"

    def test_older_refresh_does_not_reach_tree_callbacks(self, engine, seeded_remote):
        names = []
        engine.register_tree_callback(lambda tree: names.append(tree[0]["name"]))

        asyncio.run(self._overtaken_refresh(engine, seeded_remote))

        assert names == ["Renamed"]
        assert engine.state.refresh_count == 1
        assert not engine.state.is_syncing


class TestCallbacks:
    """Test observers"""

    def test_state_callback_sees_syncing(self, engine):
        seen = []
        engine.register_callback(lambda state: seen.append(state.is_syncing))
        asyncio.run(engine.refresh())
        assert seen[0] is True
        assert seen[-1] is False

    def test_unregistered_callback_is_silent(self, engine):
        seen = []
        callback = lambda state: seen.append(state)
        engine.register_callback(callback)
        engine.unregister_callback(callback)
        asyncio.run(engine.refresh())
        assert seen == []

    def test_tree_callback_receives_tree(self, engine):
        trees = []
        engine.register_tree_callback(trees.append)
        hospitals = asyncio.run(engine.refresh())
        assert trees == [hospitals]

    def test_failing_callback_does_not_break_refresh(self, engine):
        def broken(state: SyncState):
            raise RuntimeError("observer bug")

        engine.register_callback(broken)
        assert asyncio.run(engine.refresh())[0]["id"] == "h1"


class _FakeListener:
    def __init__(self):
        self.on_change = None
        self.unsubscribed = False

    async def subscribe(self, on_change):
        self.on_change = on_change

        async def unsubscribe():
            self.unsubscribed = True

        return unsubscribe


class TestWatch:
    """Test refresh on change notification"""

    def test_notification_triggers_refresh(self, engine, seeded_remote, local_db):
        listener = _FakeListener()

        async def scenario():
            unsubscribe = await engine.watch(listener)
            seeded_remote.tables["departments"][0]["name"] = "CCU"
            listener.on_change()
            await engine.wait_idle()
            await unsubscribe()

        asyncio.run(scenario())

        assert local_db.load_hospitals()[0]["departments"][0]["name"] == "CCU"
        assert listener.unsubscribed

    def test_failed_background_refresh_is_contained(self, engine, seeded_remote):
        listener = _FakeListener()
        seeded_remote.fail.add("hospitals")

        async def scenario():
            await engine.watch(listener)
            listener.on_change()
            await engine.wait_idle()

        asyncio.run(scenario())
        assert engine.state.is_offline

    def test_burst_of_notifications_coalesces(self, engine, seeded_remote):
        listener = _FakeListener()

        async def scenario():
            await engine.watch(listener)
            tasks = [listener.on_change() for _ in range(5)]
            await engine.wait_idle()
            return tasks

        tasks = asyncio.run(scenario())

        assert len(set(tasks)) == 1
        assert seeded_remote.fetch_counts["hospitals"] == 1

    def test_notification_during_refresh_queues_one_more(self, engine, seeded_remote, local_db):
        listener = _FakeListener()

        async def scenario():
            await engine.watch(listener)
            seeded_remote.hold = asyncio.Event()
            listener.on_change()
            while seeded_remote.fetch_counts["hospitals"] == 0:
                await asyncio.sleep(0)

            seeded_remote.tables["hospitals"][0]["name"] = "Renamed"
            for _ in range(3):
                listener.on_change()

            hold, seeded_remote.hold = seeded_remote.hold, None
            hold.set()
            await engine.wait_idle()

        asyncio.run(scenario())

        assert seeded_remote.fetch_counts["hospitals"] == 2
        assert local_db.load_hospitals()[0]["name"] == "Renamed"


def test_status_display_before_any_sync(local_db, remote):
    status = SyncEngine(remote, local_db).get_status_display()
    assert status["last_success"] is None
    assert status["refresh_count"] == 0
