"""Domain operations for the lead timeline (LeadHistory)."""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from growth_game.config.plans import get_plan
from growth_game.models.lead_history import LeadEventType, LeadHistory

logger = logging.getLogger(__name__)

STATUS_LABELS: dict[str, str] = {
    "new": "Novo",
    "contacted": "Contatado",
    "converted": "Convertido",
}


@dataclass
class Actor:
    """Who performed a change, for attribution on timeline events."""

    id: uuid_pkg.UUID | None = None
    name: str | None = None
    role: str | None = None


SYSTEM_ACTOR = Actor()


class HistoryOperations:
    """Append-only access to lead_history. Events are never updated or deleted."""

    async def add_event(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        event_type: LeadEventType,
        event_data: dict[str, Any] | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> LeadHistory:
        """
        Append an event to a referral's timeline.

        Only flushes: the event commits or rolls back together with the state
        change that produced it.
        """
        event = LeadHistory(
            referral_id=referral_id,
            event_type=event_type.value,
            event_data=event_data or {},
            created_by_id=actor.id,
            created_by_name=actor.name,
        )
        db.add(event)
        await db.flush()
        logger.debug(f"Recorded {event_type.value} event for referral {referral_id}")
        return event

    async def get_for_referral(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
    ) -> list[LeadHistory]:
        """Timeline of a referral, newest first."""
        statement = (
            select(LeadHistory)
            .where(LeadHistory.referral_id == referral_id)  # type: ignore[arg-type]
            .order_by(LeadHistory.created_at.desc(), LeadHistory.id.desc())  # type: ignore[attr-defined]
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def log_whatsapp_contact(
        self,
        db: AsyncSession,
        referral_id: uuid_pkg.UUID,
        actor: Actor = SYSTEM_ACTOR,
    ) -> LeadHistory:
        return await self.add_event(
            db,
            referral_id,
            LeadEventType.WHATSAPP_CONTACT,
            {"timestamp": datetime.now(UTC).isoformat()},
            actor,
        )


def describe_event(event: LeadHistory) -> str:
    """One-line human description of a timeline event."""
    data = event.event_data or {}
    event_type = event.event_type

    if event_type == LeadEventType.CREATED.value:
        return "Lead criado"

    if event_type == LeadEventType.STATUS_CHANGE.value:
        from_status = data.get("from_status", "?")
        to_status = data.get("to_status", "?")
        from_label = STATUS_LABELS.get(from_status, from_status)
        to_label = STATUS_LABELS.get(to_status, to_status)
        return f"Status alterado: {from_label} → {to_label}"

    if event_type == LeadEventType.TAG_CHANGE.value:
        if "tags" in data:
            tags = ", ".join(data.get("tags") or []) or "nenhuma"
            return f"Tags alteradas: {tags}"
        tag = data.get("tag")
        if not tag or tag == "none":
            return "Tag removida"
        return f"Tag alterada para {tag}"

    if event_type == LeadEventType.QUALIFICATION_CHANGE.value:
        return "Lead qualificado" if data.get("is_qualified") else "Lead desqualificado"

    if event_type == LeadEventType.NOTE_ADDED.value:
        if data.get("type") == "follow_up_set":
            return f"Follow-up agendado para {data.get('follow_up_date', '?')}"
        if data.get("type") == "follow_up_cleared":
            return "Follow-up removido"
        if data.get("type") == "client_flag":
            return "Marcado como cliente" if data.get("is_client") else "Desmarcado como cliente"
        if data.get("type") == "referring_lead":
            if data.get("referred_by_lead_id"):
                return "Indicação vinculada a outro lead"
            return "Vínculo de indicação removido"
        return "Observação adicionada"

    if event_type == LeadEventType.WHATSAPP_CONTACT.value:
        return "Contato via WhatsApp"

    if event_type == LeadEventType.CONVERSION.value:
        plan = get_plan(data.get("plan_id", ""))
        label = data.get("plan_label") or (plan.label if plan else data.get("plan_id", "?"))
        points = data.get("points_awarded")
        if points is None:
            return f"Convertido: {label}"
        return f"Convertido: {label} (+{points} pontos)"

    return event_type


history_ops = HistoryOperations()
