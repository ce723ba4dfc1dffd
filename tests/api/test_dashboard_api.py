"""Rankings, notifications and user endpoint tests."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from growth_game.domain.followup_operations import FollowUpItem, FollowUpUrgency, followup_ops
from growth_game.domain.profile_operations import profile_ops
from growth_game.domain.ranking_operations import LeadRankEntry, ProfileRankEntry, ranking_ops

from tests.helpers.mock_factories import make_profile


def _follow_up(urgency: FollowUpUrgency) -> FollowUpItem:
    return FollowUpItem(
        referral_id=uuid.uuid4(),
        lead_name="João",
        lead_phone="11987654321",
        status="contacted",
        follow_up_date=datetime(2026, 10, 19, 14, 0, tzinfo=UTC),
        follow_up_note="Ligar",
        urgency=urgency,
        days_until=0,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Rankings
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.anyio
async def test_rank_profiles_defaults_to_barbers(client_client: AsyncClient):
    entries = [
        ProfileRankEntry(
            rank=1, profile_id=uuid.uuid4(), name="Carlos", lifetime_points=300, wallet_balance=50
        )
    ]
    with patch.object(ranking_ops, "rank_profiles", AsyncMock(return_value=entries)) as rank:
        resp = await client_client.get("/api/v1/rankings/profiles")

    assert resp.status_code == 200
    assert resp.json()[0]["lifetime_points"] == 300
    assert rank.await_args.args[1] == "barber"


@pytest.mark.anyio
async def test_rank_profiles_by_role(staff_client: AsyncClient):
    with patch.object(ranking_ops, "rank_profiles", AsyncMock(return_value=[])) as rank:
        resp = await staff_client.get("/api/v1/rankings/profiles?role=client&limit=10")

    assert resp.status_code == 200
    assert rank.await_args.args[1] == "client"
    assert rank.await_args.kwargs["limit"] == 10


@pytest.mark.anyio
async def test_rank_profiles_unknown_role(staff_client: AsyncClient):
    resp = await staff_client.get("/api/v1/rankings/profiles?role=wizard")
    assert resp.status_code == 422


@pytest.mark.anyio
async def test_rank_leads(staff_client: AsyncClient):
    entries = [
        LeadRankEntry(
            rank=1,
            referral_id=uuid.uuid4(),
            lead_name="Maria",
            lead_phone="11987654321",
            lead_points=90,
            referral_count=2,
        )
    ]
    with patch.object(ranking_ops, "rank_leads", AsyncMock(return_value=entries)):
        resp = await staff_client.get("/api/v1/rankings/leads")

    assert resp.status_code == 200
    assert resp.json()[0]["referral_count"] == 2


# ─────────────────────────────────────────────────────────────────────────────
# Notifications
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.anyio
async def test_follow_ups(staff_client: AsyncClient):
    items = [_follow_up(FollowUpUrgency.OVERDUE), _follow_up(FollowUpUrgency.TODAY)]
    with patch.object(followup_ops, "get_for_user", AsyncMock(return_value=items)):
        resp = await staff_client.get("/api/v1/notifications/follow-ups")

    assert resp.status_code == 200
    assert [item["urgency"] for item in resp.json()] == ["overdue", "today"]


@pytest.mark.anyio
async def test_follow_up_summary(staff_client: AsyncClient):
    items = [
        _follow_up(FollowUpUrgency.OVERDUE),
        _follow_up(FollowUpUrgency.TODAY),
        _follow_up(FollowUpUrgency.TOMORROW),
    ]
    with patch.object(followup_ops, "get_for_user", AsyncMock(return_value=items)):
        resp = await staff_client.get("/api/v1/notifications/follow-ups/summary")

    assert resp.status_code == 200
    assert resp.json() == {"total": 3, "overdue": 1, "today": 1, "urgent": 2}


@pytest.mark.anyio
async def test_dismiss_follow_up(staff_client: AsyncClient, barber_context):
    referral_id = uuid.uuid4()
    with patch.object(
        followup_ops, "dismiss", AsyncMock(return_value={str(referral_id), "b", "a"})
    ) as dismiss:
        resp = await staff_client.post(f"/api/v1/notifications/follow-ups/{referral_id}/dismiss")

    assert resp.status_code == 200
    assert resp.json()["dismissed"] == sorted({str(referral_id), "a", "b"})
    assert dismiss.await_args.args[1:] == (barber_context.user_id, referral_id)


# ─────────────────────────────────────────────────────────────────────────────
# Users
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.anyio
async def test_me(client_client: AsyncClient, client_context):
    resp = await client_client.get("/api/v1/users/me")

    assert resp.status_code == 200
    data = resp.json()
    assert data["role"] == "client"
    assert data["profile"]["id"] == str(client_context.profile.id)
    assert data["profile"]["wallet_balance"] == 0


@pytest.mark.anyio
async def test_list_barbers(client_client: AsyncClient):
    barbers = [make_profile(name="Ana"), make_profile(name="Bruno")]
    with patch.object(profile_ops, "list_by_role", AsyncMock(return_value=barbers)) as lister:
        resp = await client_client.get("/api/v1/users/barbers")

    assert resp.status_code == 200
    assert [p["name"] for p in resp.json()] == ["Ana", "Bruno"]
    assert lister.await_args.args[1] == "barber"
