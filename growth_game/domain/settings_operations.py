"""Domain operations for crm_settings - per-user key/value overlays."""

import logging
import uuid as uuid_pkg
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from growth_game.models.crm_setting import CrmSetting, SettingKey

logger = logging.getLogger(__name__)


class SettingsOperations:
    """Read and upsert settings rows. Last write wins, no revision check."""

    async def get(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
        key: SettingKey,
    ) -> Any | None:
        """Value a user stored under a key, None when absent."""
        statement = select(CrmSetting.setting_value).where(
            CrmSetting.user_id == user_id,  # type: ignore[arg-type]
            CrmSetting.setting_key == key.value,  # type: ignore[arg-type]
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_global(self, db: AsyncSession, key: SettingKey) -> Any | None:
        """
        Shared value of a key: the most recently written row for it.

        Every editor upserts their own (user, key) row, so the latest
        updated_at is the last write and wins.
        """
        statement = (
            select(CrmSetting.setting_value)
            .where(CrmSetting.setting_key == key.value)  # type: ignore[arg-type]
            .order_by(CrmSetting.updated_at.desc(), CrmSetting.id)  # type: ignore[attr-defined]
            .limit(1)
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def upsert(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
        key: SettingKey,
        value: Any,
    ) -> CrmSetting:
        """Insert or overwrite the (user, key) row."""
        now = datetime.now(UTC)
        stmt = (
            insert(CrmSetting)
            .values(
                id=uuid_pkg.uuid4(),
                user_id=user_id,
                setting_key=key.value,
                setting_value=value,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=["user_id", "setting_key"],
                set_={"setting_value": value, "updated_at": now},
            )
            .returning(CrmSetting)
        )
        result = await db.execute(stmt)
        await db.flush()
        logger.debug(f"Upserted setting {key.value} for user {user_id}")
        return result.scalar_one()


settings_ops = SettingsOperations()
