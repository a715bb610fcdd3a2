# =============================================================================
# assessment_core/offline/change_listener.py
# Supabase Realtime subscription: "something changed, re-derive everything"
# =============================================================================
"""
ChangeListener - one Realtime channel covering every table in ``public``.

The notification is level-triggered: the payload (table, row, event type)
is dropped and the callback is invoked without arguments. Subscribers react
with a full refresh.
"""

from __future__ import annotations
from typing import Any, Awaitable, Callable, Dict, Optional

from assessment_core.errors import safe_execute
from assessment_core.logging import get_logger

logger = get_logger(__name__)


class ChangeListener:
    """
    Usage:
        listener = ChangeListener(supabase_client)
        unsubscribe = await listener.subscribe(lambda: print("changed"))
        ...
        await unsubscribe()
    """

    CHANNEL_NAME = "db-changes"
    SCHEMA = "public"

    def __init__(self, client):
        """
        Args:
            client: Async Supabase client (anything exposing ``channel`` and
                ``remove_channel``)
        """
        self.client = client
        self._channel = None
        self.notification_count = 0

    @property
    def is_subscribed(self) -> bool:
        return self._channel is not None

    async def subscribe(self, on_change: Callable[[], Any]) -> Callable[[], Awaitable[None]]:
        """
        Subscribe ``on_change`` to insert/update/delete on any watched table.

        Returns:
            Async callable removing the channel
        """
        if self._channel is not None:
            logger.warning("ChangeListener already subscribed; replacing channel")
            await self._remove()

        def handle(payload: Optional[Dict[str, Any]] = None) -> None:
            self.notification_count += 1
            logger.debug("Remote change detected, notifying subscriber")
            safe_execute(on_change, error_message="Error in change callback")

        channel = self.client.channel(self.CHANNEL_NAME)
        channel.on_postgres_changes("*", schema=self.SCHEMA, callback=handle)
        await channel.subscribe()
        self._channel = channel
        logger.info(f"Subscribed to remote changes on schema '{self.SCHEMA}'")

        async def unsubscribe() -> None:
            if self._channel is channel:
                await self._remove()

        return unsubscribe

    async def _remove(self) -> None:
        channel, self._channel = self._channel, None
        await self.client.remove_channel(channel)
        logger.info("Unsubscribed from remote changes")
