# =============================================================================
# assessment_core/offline/sync_engine.py
# Full-snapshot synchronization: fetch every table, assemble, write through
# =============================================================================
"""
SyncEngine - the single source-of-truth refresh.

Features:
- Concurrent read-all of every remote table
- All-or-nothing: one failed table aborts the refresh
- Write-through of the assembled tree to the local store (full replace)
- Offline fallback to the last stored tree
- Refresh on remote change notifications
- Sync status tracking and callbacks

Overlapping refreshes (a user-triggered one and one triggered by a change
notification, say) each take a generation ticket when they start. Only a
refresh younger than the last committed one may overwrite the local store
or reach the tree callbacks, so a slow, older snapshot never replaces a
newer one.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from assessment_core.data.assembler import assemble
from assessment_core.data.casing import to_local_shape
from assessment_core.data.schema import KINDS, ROOT_KIND
from assessment_core.errors import ErrorContext, RemoteFetchError
from assessment_core.logging import LogContext, get_logger

logger = get_logger(__name__)

Tree = List[Dict[str, Any]]


@dataclass
class SyncState:
    """Current sync state."""
    is_syncing: bool = False
    is_offline: bool = False
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    refresh_count: int = 0
    failure_count: int = 0
    last_error: Optional[str] = None


class SyncEngine:
    """
    Fetch-assemble-cache cycle over a remote store and a local database.

    Usage:
        engine = SyncEngine(remote_store, local_db)
        hospitals = engine.load_cached()          # instant, possibly stale
        hospitals = await engine.refresh_or_cached()
        unsubscribe = await engine.watch(change_listener)
    """

    LAST_SYNC_KEY = "last_sync_success"

    def __init__(self, remote, local_db, sync_timeout: Optional[float] = None):
        """
        Args:
            remote: Object with ``async fetch_all(table) -> list[dict]``
            local_db: LocalDatabase
            sync_timeout: Seconds ``refresh_or_cached`` waits before falling back
        """
        self.remote = remote
        self.local_db = local_db
        self.sync_timeout = sync_timeout
        self._state = SyncState()
        self._callbacks: List[Callable[[SyncState], None]] = []
        self._tree_callbacks: List[Callable[[Tree], None]] = []
        self._tasks: Set[asyncio.Task] = set()
        self._background: Optional[asyncio.Task] = None
        self._refresh_queued = False
        self._in_flight = 0
        self._next_ticket = 0
        self._committed_ticket = 0

    @property
    def state(self) -> SyncState:
        """Get current sync state."""
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._state.is_syncing

    # =========================================================================
    # REFRESH
    # =========================================================================

    def load_cached(self) -> Tree:
        """Last tree written by a successful refresh."""
        return self.local_db.load_hospitals()

    async def refresh(self) -> Tree:
        """
        Re-download every table and rebuild the tree.

        Returns:
            Assembled hospitals. A refresh overtaken by a younger one returns
            the younger one's stored tree instead of its own snapshot.

        Raises:
            RemoteFetchError: if any table read failed; nothing is written
        """
        self._next_ticket += 1
        ticket = self._next_ticket
        self._in_flight += 1
        self._state.is_syncing = True
        self._state.last_sync = datetime.now()
        self._notify_callbacks()

        try:
            with LogContext(logger, f"Refresh #{ticket}"):
                rows = await self._fetch_all_tables()
                hospitals = assemble(rows[ROOT_KIND], rows)
                committed = self._commit(ticket, hospitals)

            self._state.is_offline = False
            if not committed:
                return self.load_cached()

            self._state.last_sync_success = datetime.now()
            self._state.refresh_count += 1
            self._state.last_error = None
            self._notify_tree(hospitals)
            return hospitals

        except RemoteFetchError as e:
            self._state.failure_count += 1
            self._state.last_error = e.message
            raise

        finally:
            self._in_flight -= 1
            self._state.is_syncing = self._in_flight > 0
            self._notify_callbacks()

    async def _fetch_all_tables(self) -> Dict[str, Tree]:
        kinds = list(KINDS.values())
        results = await asyncio.gather(
            *(self.remote.fetch_all(kind.table) for kind in kinds),
            return_exceptions=True,
        )

        failed = []
        first_error: Optional[BaseException] = None
        for kind, result in zip(kinds, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"Error fetching {kind.table}: {result}")
                failed.append(kind.table)
                first_error = first_error or result

        if failed:
            raise RemoteFetchError(
                f"Refresh aborted: {len(failed)} table(s) could not be read",
                tables=failed,
            ) from first_error

        logger.debug("All tables fetched, assembling tree")
        return {kind.name: to_local_shape(result) for kind, result in zip(kinds, results)}

    def _commit(self, ticket: int, hospitals: Tree) -> bool:
        """Write ``hospitals`` through unless a younger refresh already has."""
        if ticket < self._committed_ticket:
            logger.info(
                f"Refresh #{ticket} finished after #{self._committed_ticket}; "
                "keeping the newer local snapshot"
            )
            return False

        count = self.local_db.replace_hospitals(hospitals)
        self.local_db.set_setting(self.LAST_SYNC_KEY, datetime.now().isoformat())
        self._committed_ticket = ticket
        logger.info(f"Local store updated with {count} hospital(s)")
        return True

    async def refresh_or_cached(self) -> Tree:
        """
        Refresh, falling back to the local snapshot when the network fails.

        Returns:
            Fresh tree, or the last stored tree in degraded/offline mode
        """
        try:
            if self.sync_timeout:
                return await asyncio.wait_for(self.refresh(), timeout=self.sync_timeout)
            return await self.refresh()

        except (RemoteFetchError, asyncio.TimeoutError) as e:
            logger.warning(f"Remote refresh failed, serving cached data: {e}")
            if isinstance(e, asyncio.TimeoutError):
                self._state.failure_count += 1
                self._state.last_error = "refresh timed out"
            self._state.is_offline = True
            self._notify_callbacks()
            return self.load_cached()

    # =========================================================================
    # CHANGE NOTIFICATIONS
    # =========================================================================

    async def watch(self, listener) -> Callable[[], Awaitable[None]]:
        """
        Re-run the refresh whenever ``listener`` reports a remote change.

        Returns:
            Async callable that unsubscribes
        """
        return await listener.subscribe(self.schedule_refresh)

    def schedule_refresh(self) -> asyncio.Task:
        """
        Start a background ``refresh_or_cached``; must run inside the event loop.

        Bursts of notifications coalesce: while a background refresh runs,
        further calls queue at most one follow-up refresh and return the
        running task.
        """
        if self._background is not None and not self._background.done():
            self._refresh_queued = True
            return self._background

        task = asyncio.get_running_loop().create_task(self._background_refresh())
        self._background = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _background_refresh(self) -> None:
        while True:
            self._refresh_queued = False
            with ErrorContext("Refresh after remote change"):
                await self.refresh_or_cached()
            if not self._refresh_queued:
                return
            logger.debug("Changes arrived during refresh, refreshing again")

    async def wait_idle(self) -> None:
        """Wait for every scheduled background refresh to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # CALLBACKS
    # =========================================================================

    def register_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Register a callback for sync state changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def register_tree_callback(self, callback: Callable[[Tree], None]) -> None:
        """Register a callback receiving every freshly assembled tree."""
        if callback not in self._tree_callbacks:
            self._tree_callbacks.append(callback)

    def unregister_tree_callback(self, callback: Callable[[Tree], None]) -> None:
        if callback in self._tree_callbacks:
            self._tree_callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        """Notify all registered callbacks."""
        for callback in self._callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def _notify_tree(self, hospitals: Tree) -> None:
        for callback in self._tree_callbacks:
            try:
                callback(hospitals)
            except Exception as e:
                logger.error(f"Error in tree callback: {e}")

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        return {
            "is_syncing": self._state.is_syncing,
            "is_offline": self._state.is_offline,
            "last_sync": self._state.last_sync.isoformat() if self._state.last_sync else None,
            "last_success": (
                self._state.last_sync_success.isoformat()
                if self._state.last_sync_success
                else self.local_db.get_setting(self.LAST_SYNC_KEY)
            ),
            "refresh_count": self._state.refresh_count,
            "failure_count": self._state.failure_count,
            "last_error": self._state.last_error,
        }
