# =============================================================================
# assessment_core/context.py
# Explicit wiring of the sync core's collaborators
# =============================================================================
"""
SyncContext - one object holding every collaborator, built once at startup
and passed to whoever needs it.

Usage:
    context = await SyncContext.connect()
    hospitals = await context.start()
    ...
    await context.close()

Tests build a context from in-memory doubles with ``SyncContext.build``.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from assessment_core.config import Settings
from assessment_core.data.supabase_client import BlobStore, RemoteStore, create_supabase_client
from assessment_core.logging import get_logger, setup_logging
from assessment_core.offline.attachment_cache import AttachmentCache
from assessment_core.offline.change_listener import ChangeListener
from assessment_core.offline.local_database import LocalDatabase
from assessment_core.offline.sync_engine import SyncEngine
from assessment_core.services.backup_service import BackupService
from assessment_core.services.hospital_service import HospitalService
from assessment_core.services.mutation_gateway import MutationGateway

logger = get_logger(__name__)


@dataclass
class SyncContext:
    settings: Settings
    local_db: LocalDatabase
    remote: Any
    blobs: Any
    sync_engine: SyncEngine
    mutations: MutationGateway
    attachments: AttachmentCache
    hospital_service: HospitalService
    backup_service: BackupService
    change_listener: Optional[ChangeListener] = None
    client: Any = None
    _unsubscribe: Optional[Callable[[], Awaitable[None]]] = field(default=None, repr=False)

    @classmethod
    def build(
        cls,
        settings: Settings,
        remote,
        blobs,
        local_db: Optional[LocalDatabase] = None,
        change_listener: Optional[ChangeListener] = None,
        client: Any = None,
    ) -> SyncContext:
        """Assemble a context from already-constructed stores."""
        local_db = local_db or LocalDatabase(settings.local_db_path).initialize()
        mutations = MutationGateway(remote)
        attachments = AttachmentCache(
            local_db,
            blobs,
            invalidate_on_remote_failure=settings.invalidate_on_remote_delete_failure,
        )
        return cls(
            settings=settings,
            local_db=local_db,
            remote=remote,
            blobs=blobs,
            sync_engine=SyncEngine(remote, local_db, sync_timeout=settings.sync_timeout),
            mutations=mutations,
            attachments=attachments,
            hospital_service=HospitalService(mutations, attachments),
            backup_service=BackupService(mutations, attachments),
            change_listener=change_listener,
            client=client,
        )

    @classmethod
    async def connect(cls, settings: Optional[Settings] = None, configure_logging: bool = True) -> SyncContext:
        """
        Create the Supabase client and every collaborator from settings.

        Raises:
            ConfigurationError: if Supabase credentials are missing
        """
        settings = settings or Settings.load()
        if configure_logging:
            setup_logging(level=settings.log_level, log_to_file=settings.log_to_file)

        client = await create_supabase_client(settings)
        context = cls.build(
            settings,
            remote=RemoteStore(client, page_size=settings.page_size),
            blobs=BlobStore(client, bucket=settings.storage_bucket),
            change_listener=ChangeListener(client),
            client=client,
        )
        logger.info("Sync context connected")
        return context

    async def start(self, watch: bool = True) -> List[dict]:
        """
        Initial load: refresh (falling back to the cache) and, with ``watch``,
        subscribe to change notifications.
        """
        hospitals = await self.sync_engine.refresh_or_cached()
        if watch and self.change_listener is not None and self._unsubscribe is None:
            self._unsubscribe = await self.sync_engine.watch(self.change_listener)
        return hospitals

    async def close(self) -> None:
        if self._unsubscribe is not None:
            await self._unsubscribe()
            self._unsubscribe = None
        await self.sync_engine.wait_idle()
        self.local_db.close()
        logger.info("Sync context closed")
