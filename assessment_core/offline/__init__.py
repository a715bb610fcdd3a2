# =============================================================================
# assessment_core/offline/__init__.py
# Offline-First Layer for the Skill Assessment sync core
# =============================================================================
"""
Offline-First Layer

The application always renders the last assembled tree it has, and replaces
it whenever a refresh succeeds.

Architecture:
------------
    ┌───────────────┐   change   ┌────────────────┐
    │ChangeListener │──────────► │   SyncEngine   │
    │  (Realtime)   │  notifies  │ (full refresh) │
    └───────────────┘            └───────┬────────┘
                                  fetch  │  write-through
                         ┌───────────────┴──────────────┐
                         ▼                              ▼
                 ┌──────────────┐               ┌──────────────┐
                 │  Supabase    │               │    SQLite    │
                 │  (13 tables) │               │ hospitals +  │
                 └──────────────┘               │    files     │
                         ▲                      └──────────────┘
                         │ public URL                   ▲
                 ┌───────┴────────┐                     │
                 │AttachmentCache │─────────────────────┘
                 └────────────────┘

Usage:
------
from assessment_core.context import SyncContext

context = await SyncContext.connect()
hospitals = context.sync_engine.load_cached()
hospitals = await context.sync_engine.refresh_or_cached()
unsubscribe = await context.sync_engine.watch(context.change_listener)
"""

from assessment_core.offline.local_database import LocalDatabase

from assessment_core.offline.sync_engine import (
    SyncEngine,
    SyncState,
)

from assessment_core.offline.change_listener import ChangeListener

from assessment_core.offline.attachment_cache import (
    Attachment,
    AttachmentCache,
    object_path,
)

__all__ = [
    # Local Database
    "LocalDatabase",
    # Sync Engine
    "SyncEngine",
    "SyncState",
    # Change notifications
    "ChangeListener",
    # Attachments
    "Attachment",
    "AttachmentCache",
    "object_path",
]
