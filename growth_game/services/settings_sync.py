"""Debounced write-behind for configuration overlays.

Overlay edits arrive in bursts (typing a template, dragging columns). Each
change replaces the pending value for its (user, key) and restarts a short
timer; only the last value is written once the timer fires. Writes are
last-write-wins with no revision check.
"""

import asyncio
import logging
import uuid as uuid_pkg
from collections.abc import Callable
from typing import Any

from growth_game.config import settings
from growth_game.core.database import async_session_maker
from growth_game.domain.settings_operations import settings_ops
from growth_game.models.crm_setting import SettingKey

logger = logging.getLogger(__name__)

PendingKey = tuple[uuid_pkg.UUID, SettingKey]


class SettingsSyncer:
    """Coalesces overlay writes per (user, key) and flushes them after a delay."""

    def __init__(
        self,
        debounce_seconds: float | None = None,
        session_maker: Callable[[], Any] | None = None,
    ) -> None:
        if debounce_seconds is None:
            debounce_seconds = settings.settings_flush_debounce_ms / 1000
        self._debounce_seconds = debounce_seconds
        self._session_maker = session_maker or async_session_maker
        self._pending: dict[PendingKey, Any] = {}
        self._latest: dict[SettingKey, Any] = {}
        self._timers: dict[PendingKey, asyncio.Task[None]] = {}

    def schedule(self, user_id: uuid_pkg.UUID, key: SettingKey, value: Any) -> None:
        """Queue a value, replacing any pending one and restarting the timer."""
        pending_key = (user_id, key)
        self._pending[pending_key] = value
        self._latest[key] = value

        timer = self._timers.pop(pending_key, None)
        if timer is not None:
            timer.cancel()
        self._timers[pending_key] = asyncio.get_running_loop().create_task(
            self._flush_after_delay(pending_key)
        )

    def pending_value(self, key: SettingKey) -> Any | None:
        """Latest value queued for a key that has not been written yet."""
        return self._latest.get(key)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def _flush_after_delay(self, pending_key: PendingKey) -> None:
        await asyncio.sleep(self._debounce_seconds)
        if self._timers.get(pending_key) is asyncio.current_task():
            del self._timers[pending_key]
        await self._flush(pending_key)

    async def _flush(self, pending_key: PendingKey) -> None:
        if pending_key not in self._pending:
            return
        user_id, key = pending_key
        value = self._pending.pop(pending_key)

        try:
            async with self._session_maker() as db:
                await settings_ops.upsert(db, user_id, key, value)
                await db.commit()
            logger.info(f"[settings-sync] Saved {key.value} for user {user_id}")
        except Exception as e:
            logger.exception(f"[settings-sync] Failed to save {key.value} for user {user_id}: {e}")
        finally:
            if not any(pending[1] == key for pending in self._pending):
                if self._latest.get(key) is value:
                    del self._latest[key]

    async def flush_all(self) -> None:
        """Write every pending value now (called on shutdown)."""
        if self._pending:
            logger.info(f"Flushing {self.pending_count} pending settings writes")
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

        for pending_key in list(self._pending):
            await self._flush(pending_key)


settings_syncer = SettingsSyncer()
