"""Internal task scheduler using APScheduler.

Runs periodic jobs within the FastAPI process. PostgreSQL advisory locks keep
a job from running on more than one instance at a time.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import text

from growth_game.config import settings
from growth_game.core.database import async_session_maker, direct_session_maker

logger = logging.getLogger(__name__)

# Advisory lock IDs (arbitrary unique integers, one per job)
FOLLOW_UP_REFRESH_LOCK_ID = 562301


@asynccontextmanager
async def advisory_lock(lock_id: int) -> AsyncIterator[bool]:
    """
    Hold a PostgreSQL advisory lock for the duration of the context.

    pg_try_advisory_lock() returns immediately; when another process holds
    the lock we yield False and the caller skips its run. The lock is
    session-level, so it is taken on a direct (non-pooled) connection.
    """
    async with direct_session_maker() as session:
        result = await session.execute(
            text("SELECT pg_try_advisory_lock(:lock_id)"),
            {"lock_id": lock_id},
        )
        acquired = result.scalar()

        if not acquired:
            yield False
            return

        try:
            yield True
        finally:
            await session.execute(
                text("SELECT pg_advisory_unlock(:lock_id)"),
                {"lock_id": lock_id},
            )
            await session.commit()


async def run_follow_up_refresh() -> dict[str, Any] | None:
    """
    Recompute the follow-up reminder summary.

    Returns the summary dict if executed, None if skipped or failed.
    """
    async with advisory_lock(FOLLOW_UP_REFRESH_LOCK_ID) as acquired:
        if not acquired:
            logger.debug("[scheduler] Follow-up refresh: skipped (another instance is running)")
            return None

        try:
            from growth_game.domain.followup_operations import followup_ops

            async with async_session_maker() as db:
                summary = await followup_ops.refresh_snapshot(db)

            logger.debug(
                f"[scheduler] Follow-up refresh: {summary.total} due "
                f"({summary.overdue} overdue, {summary.today} today)"
            )
            return asdict(summary)

        except Exception as e:
            logger.exception(f"[scheduler] Follow-up refresh: failed with error: {e}")
            return None


class Scheduler:
    """Manages the APScheduler instance and job registration."""

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start the scheduler and register jobs."""
        if not settings.scheduler_enabled:
            logger.info("[scheduler] Disabled via SCHEDULER_ENABLED=false")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            run_follow_up_refresh,
            trigger=IntervalTrigger(seconds=settings.follow_up_refresh_seconds),
            id="follow_up_refresh",
            name="Follow-up Reminder Refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self._scheduler.start()
        logger.info(
            f"[scheduler] Started with follow-up refresh every "
            f"{settings.follow_up_refresh_seconds}s"
        )

    def stop(self) -> None:
        """Gracefully shut down the scheduler."""
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("[scheduler] Stopped")


scheduler = Scheduler()
