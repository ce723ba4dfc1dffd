"""Unit tests for ReferralOperations: registration, transitions and the point ledger.

All DB calls are mocked. Row locks (get_for_update) are patched to hand out
in-memory model instances so the tests can assert on the counters.
"""

import uuid
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from growth_game.core.exceptions import (
    AlreadyConvertedError,
    InvalidPlanError,
    InvalidTransitionError,
    ProfileNotFoundError,
    ReferralCycleError,
    ReferralNotFoundError,
    WriteError,
)
from growth_game.domain.history_operations import Actor, history_ops
from growth_game.domain.profile_operations import profile_ops
from growth_game.domain.referral_operations import ReferralOperations, _normalize_tags
from growth_game.models.lead_history import LeadEventType
from growth_game.models.referral import ReferralStatus

from tests.helpers.mock_factories import (
    make_mock_db,
    make_profile,
    make_referral,
    mock_rows_result,
)

ACTOR = Actor(id=uuid.uuid4(), name="Carlos", role="barber")


def _lock_rows(*rows):
    """get_for_update stand-in returning the row with the requested id."""
    by_id = {row.id: row for row in rows}
    return AsyncMock(side_effect=lambda _db, row_id: by_id.get(row_id))


def _event_types(add_event: AsyncMock) -> list[LeadEventType]:
    return [call.args[2] for call in add_event.await_args_list]


class LedgerTestCase:
    """Shared setup: fresh ops, mocked session, history writes captured."""

    def setup_method(self):
        self.ops = ReferralOperations()
        self.db = make_mock_db()
        self.profile = make_profile(name="Carlos")
        self._history_patch = patch.object(history_ops, "add_event", AsyncMock())
        self.add_event = self._history_patch.start()

    def teardown_method(self):
        self._history_patch.stop()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegister(LedgerTestCase):
    """register(): insert + registration bonus in one transaction."""

    @pytest.mark.asyncio
    async def test_credits_bonus_to_wallet_and_lifetime(self):
        with patch.object(profile_ops, "get_for_update", _lock_rows(self.profile)):
            referral = await self.ops.register(
                self.db, self.profile.id, "João Silva", "11987654321", actor=ACTOR
            )

        assert self.profile.wallet_balance == 10
        assert self.profile.lifetime_points == 10
        assert referral.status == ReferralStatus.NEW.value
        assert referral.referrer_id == self.profile.id
        assert referral.referrer_name == "Carlos"
        assert referral.converted_plan_id is None

    @pytest.mark.asyncio
    async def test_records_created_event_and_attribution(self):
        with patch.object(profile_ops, "get_for_update", _lock_rows(self.profile)):
            referral = await self.ops.register(
                self.db, self.profile.id, "  João  ", "11987654321", actor=ACTOR
            )

        assert referral.lead_name == "João"
        assert referral.created_by_name == "Carlos"
        assert referral.created_by_role == "barber"
        assert _event_types(self.add_event) == [LeadEventType.CREATED]

    @pytest.mark.asyncio
    async def test_missing_profile_raises_not_found(self):
        with patch.object(profile_ops, "get_for_update", AsyncMock(return_value=None)):
            with pytest.raises(ProfileNotFoundError):
                await self.ops.register(self.db, uuid.uuid4(), "João", "11987654321")

        self.db.add.assert_not_called()
        self.add_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_failure_becomes_write_error(self):
        self.db.flush = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("down")))

        with patch.object(profile_ops, "get_for_update", _lock_rows(self.profile)):
            with pytest.raises(WriteError):
                await self.ops.register(self.db, self.profile.id, "João", "11987654321")

    @pytest.mark.asyncio
    async def test_bonus_follows_configured_amount(self):
        with (
            patch.object(profile_ops, "get_for_update", _lock_rows(self.profile)),
            patch("growth_game.domain.referral_operations.settings") as mock_settings,
        ):
            mock_settings.referral_bonus_points = 25
            await self.ops.register(self.db, self.profile.id, "João", "11987654321")

        assert self.profile.wallet_balance == 25


class TestRegisterViaLead(LedgerTestCase):
    """register_via_lead(): bonus goes to the referring lead, not a wallet."""

    @pytest.mark.asyncio
    async def test_credits_referring_lead_points(self):
        lead = make_referral(lead_name="Maria", lead_points=5, status="converted")

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(lead)),
            patch.object(profile_ops, "get", AsyncMock(return_value=self.profile)),
        ):
            referral = await self.ops.register_via_lead(
                self.db, self.profile.id, lead.id, "Pedro", "11912345678", actor=ACTOR
            )

        assert lead.lead_points == 15
        assert self.profile.wallet_balance == 0
        assert referral.referred_by_lead_id == lead.id
        assert referral.referrer_id == self.profile.id
        assert referral.referrer_name == "Maria"
        assert _event_types(self.add_event) == [LeadEventType.CREATED]

    @pytest.mark.asyncio
    async def test_missing_referring_lead_raises(self):
        with patch.object(self.ops, "get_for_update", AsyncMock(return_value=None)):
            with pytest.raises(ReferralNotFoundError):
                await self.ops.register_via_lead(
                    self.db, self.profile.id, uuid.uuid4(), "Pedro", "11912345678"
                )

    @pytest.mark.asyncio
    async def test_missing_creator_profile_raises(self):
        lead = make_referral()
        with (
            patch.object(self.ops, "get_for_update", _lock_rows(lead)),
            patch.object(profile_ops, "get", AsyncMock(return_value=None)),
        ):
            with pytest.raises(ProfileNotFoundError):
                await self.ops.register_via_lead(
                    self.db, uuid.uuid4(), lead.id, "Pedro", "11912345678"
                )
        assert lead.lead_points == 0


class TestRegisterClient(LedgerTestCase):
    @pytest.mark.asyncio
    async def test_marks_client_without_points(self):
        with patch.object(profile_ops, "get", AsyncMock(return_value=self.profile)):
            referral = await self.ops.register_client(
                self.db, self.profile.id, "Ana", "11911112222"
            )

        assert referral.is_client is True
        assert referral.client_since is not None
        assert referral.status == ReferralStatus.NEW.value
        assert self.profile.wallet_balance == 0
        assert self.profile.lifetime_points == 0


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


class TestContactTransitions(LedgerTestCase):
    @pytest.mark.asyncio
    async def test_new_to_contacted_logs_status_change(self):
        referral = make_referral()
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.mark_contacted(self.db, referral.id, actor=ACTOR)

        assert referral.status == ReferralStatus.CONTACTED.value
        call = self.add_event.await_args
        assert call.args[2] == LeadEventType.STATUS_CHANGE
        assert call.args[3] == {"from_status": "new", "to_status": "contacted"}

    @pytest.mark.asyncio
    async def test_mark_contacted_twice_is_noop(self):
        referral = make_referral(status=ReferralStatus.CONTACTED.value)
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.mark_contacted(self.db, referral.id)

        assert referral.status == ReferralStatus.CONTACTED.value
        self.add_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_undo_contacted_back_to_new(self):
        referral = make_referral(status=ReferralStatus.CONTACTED.value)
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.undo_contacted(self.db, referral.id)

        assert referral.status == ReferralStatus.NEW.value

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["mark_contacted", "undo_contacted"])
    async def test_rejected_when_converted(self, method):
        referral = make_referral(status=ReferralStatus.CONVERTED.value)
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            with pytest.raises(InvalidTransitionError):
                await getattr(self.ops, method)(self.db, referral.id)

        assert referral.status == ReferralStatus.CONVERTED.value
        assert referral.converted_plan_id == "gold_corte"

    @pytest.mark.asyncio
    async def test_unknown_referral_raises_not_found(self):
        with patch.object(self.ops, "get_for_update", AsyncMock(return_value=None)):
            with pytest.raises(ReferralNotFoundError):
                await self.ops.mark_contacted(self.db, uuid.uuid4())


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


class TestConfirmConversion(LedgerTestCase):
    """confirm_conversion(): plan points to the wallet or to the referring lead."""

    @pytest.mark.asyncio
    async def test_awards_plan_points_to_referrer_profile(self):
        referral = make_referral(
            referrer_id=self.profile.id, status=ReferralStatus.CONTACTED.value
        )
        self.profile.wallet_balance = 10
        self.profile.lifetime_points = 10

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(referral)),
            patch.object(profile_ops, "get_for_update", _lock_rows(self.profile)),
        ):
            result = await self.ops.confirm_conversion(
                self.db, referral.id, "gold_corte", actor=ACTOR
            )

        assert result.points_awarded == 80
        assert result.credited_profile_id == self.profile.id
        assert result.credited_lead_id is None
        assert self.profile.wallet_balance == 90
        assert self.profile.lifetime_points == 90

    @pytest.mark.asyncio
    async def test_sets_status_plan_and_client_flags(self):
        referral = make_referral(referrer_id=self.profile.id)

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(referral)),
            patch.object(profile_ops, "get_for_update", _lock_rows(self.profile)),
        ):
            await self.ops.confirm_conversion(self.db, referral.id, "prata_corte")

        assert referral.status == ReferralStatus.CONVERTED.value
        assert referral.converted_plan_id == "prata_corte"
        assert referral.is_client is True
        assert referral.client_since is not None

    @pytest.mark.asyncio
    async def test_records_conversion_event(self):
        referral = make_referral(referrer_id=self.profile.id)

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(referral)),
            patch.object(profile_ops, "get_for_update", _lock_rows(self.profile)),
        ):
            await self.ops.confirm_conversion(self.db, referral.id, "vip_completo", actor=ACTOR)

        call = self.add_event.await_args
        assert call.args[2] == LeadEventType.CONVERSION
        assert call.args[3] == {
            "plan_id": "vip_completo",
            "plan_label": "VIP - Completo",
            "points_awarded": 400,
        }

    @pytest.mark.asyncio
    async def test_lead_driven_conversion_credits_referring_lead(self):
        lead = make_referral(lead_name="Maria", lead_points=10, status="converted")
        referral = make_referral(referrer_id=self.profile.id, referred_by_lead_id=lead.id)
        award = AsyncMock()

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(referral, lead)),
            patch.object(profile_ops, "award_points", award),
        ):
            result = await self.ops.confirm_conversion(self.db, referral.id, "gold_corte")

        assert lead.lead_points == 90
        assert result.credited_lead_id == lead.id
        assert result.credited_profile_id is None
        award.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_staff_share_is_not_split_off(self):
        """A configured staff percentage leaves the lead credit untouched."""
        lead = make_referral(lead_points=0, status="converted")
        referral = make_referral(referrer_id=self.profile.id, referred_by_lead_id=lead.id)
        award = AsyncMock()

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(referral, lead)),
            patch.object(profile_ops, "award_points", award),
            patch("growth_game.config.plans.settings") as plan_settings,
        ):
            plan_settings.barber_referral_conversion_percent = 50
            result = await self.ops.confirm_conversion(self.db, referral.id, "gold_corte")

        assert lead.lead_points == 80
        assert result.points_awarded == 80
        award.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_second_confirmation_raises_and_awards_nothing(self):
        referral = make_referral(referrer_id=self.profile.id)

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(referral)),
            patch.object(profile_ops, "get_for_update", _lock_rows(self.profile)),
        ):
            await self.ops.confirm_conversion(self.db, referral.id, "gold_corte")
            with pytest.raises(AlreadyConvertedError):
                await self.ops.confirm_conversion(self.db, referral.id, "vip_corte")

        assert self.profile.wallet_balance == 80
        assert referral.converted_plan_id == "gold_corte"

    @pytest.mark.asyncio
    async def test_unknown_plan_rejected_before_locking(self):
        lock = AsyncMock()
        with patch.object(self.ops, "get_for_update", lock):
            with pytest.raises(InvalidPlanError):
                await self.ops.confirm_conversion(self.db, uuid.uuid4(), "diamante")

        lock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_plan_overrides_change_awarded_points(self):
        referral = make_referral(referrer_id=self.profile.id)

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(referral)),
            patch.object(profile_ops, "get_for_update", _lock_rows(self.profile)),
        ):
            result = await self.ops.confirm_conversion(
                self.db,
                referral.id,
                "gold_corte",
                plan_overrides={"gold_corte": {"points": 95, "price": ""}},
            )

        assert result.points_awarded == 95
        assert self.profile.wallet_balance == 95

    @pytest.mark.asyncio
    async def test_missing_referrer_profile_raises(self):
        referral = make_referral()

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(referral)),
            patch.object(profile_ops, "get_for_update", AsyncMock(return_value=None)),
        ):
            with pytest.raises(ProfileNotFoundError):
                await self.ops.confirm_conversion(self.db, referral.id, "gold_corte")

    @pytest.mark.asyncio
    async def test_removed_referrer_raises_and_awards_nothing(self):
        # referrer_id is cleared when the member leaves the team
        referral = make_referral(referrer_id=None, referrer_name="Ex Barbeiro")
        award = AsyncMock()

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(referral)),
            patch.object(profile_ops, "award_points", award),
        ):
            with pytest.raises(ProfileNotFoundError, match="Ex Barbeiro"):
                await self.ops.confirm_conversion(self.db, referral.id, "gold_corte")

        award.assert_not_awaited()
        self.add_event.assert_not_awaited()


class TestUndoConversion(LedgerTestCase):
    @pytest.mark.asyncio
    async def test_reverts_status_and_keeps_points(self):
        referral = make_referral(referrer_id=self.profile.id)

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(referral)),
            patch.object(profile_ops, "get_for_update", _lock_rows(self.profile)),
        ):
            await self.ops.confirm_conversion(self.db, referral.id, "gold_corte")
            await self.ops.undo_conversion(self.db, referral.id)

        assert referral.status == ReferralStatus.CONTACTED.value
        assert referral.converted_plan_id is None
        assert self.profile.wallet_balance == 80
        assert self.profile.lifetime_points == 80

    @pytest.mark.asyncio
    async def test_rejected_when_not_converted(self):
        referral = make_referral(status=ReferralStatus.CONTACTED.value)
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            with pytest.raises(InvalidTransitionError):
                await self.ops.undo_conversion(self.db, referral.id)

    @pytest.mark.asyncio
    async def test_can_convert_again_after_undo(self):
        referral = make_referral(referrer_id=self.profile.id)

        with (
            patch.object(self.ops, "get_for_update", _lock_rows(referral)),
            patch.object(profile_ops, "get_for_update", _lock_rows(self.profile)),
        ):
            await self.ops.confirm_conversion(self.db, referral.id, "prata_corte")
            await self.ops.undo_conversion(self.db, referral.id)
            await self.ops.confirm_conversion(self.db, referral.id, "prata_completo")

        assert referral.converted_plan_id == "prata_completo"
        assert self.profile.lifetime_points == 30 + 50


# ---------------------------------------------------------------------------
# Workflow metadata
# ---------------------------------------------------------------------------


class TestWorkflowMetadata(LedgerTestCase):
    @pytest.mark.asyncio
    async def test_contact_tag_change_records_previous(self):
        referral = make_referral(contact_tag="mql")
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.set_contact_tag(self.db, referral.id, "sql")

        assert referral.contact_tag == "sql"
        assert self.add_event.await_args.args[3] == {"tag": "sql", "previous_tag": "mql"}

    @pytest.mark.asyncio
    async def test_clearing_contact_tag_logs_none(self):
        referral = make_referral(contact_tag="cold")
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.set_contact_tag(self.db, referral.id, None)

        assert referral.contact_tag is None
        assert self.add_event.await_args.args[3]["tag"] == "none"

    @pytest.mark.asyncio
    async def test_set_tags_normalizes(self):
        referral = make_referral(tags=["vip"])
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.set_tags(self.db, referral.id, [" sql ", "sql", "", "cold"])

        assert referral.tags == ["sql", "cold"]
        assert self.add_event.await_args.args[3]["previous_tags"] == ["vip"]

    @pytest.mark.asyncio
    async def test_follow_up_set_and_cleared(self):
        referral = make_referral()
        due = datetime(2026, 10, 20, 14, 0, tzinfo=UTC)
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.set_follow_up(self.db, referral.id, due, "Ligar à tarde")
            assert referral.follow_up_date == due
            await self.ops.clear_follow_up(self.db, referral.id)

        assert referral.follow_up_date is None
        assert referral.follow_up_note is None
        kinds = [call.args[3]["type"] for call in self.add_event.await_args_list]
        assert kinds == ["follow_up_set", "follow_up_cleared"]

    @pytest.mark.asyncio
    async def test_client_flag_stamps_and_clears_since(self):
        referral = make_referral()
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.set_client_flag(self.db, referral.id, True)
            assert referral.client_since is not None
            await self.ops.set_client_flag(self.db, referral.id, False)

        assert referral.is_client is False
        assert referral.client_since is None

    @pytest.mark.asyncio
    async def test_client_flag_change_is_logged(self):
        referral = make_referral()
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.set_client_flag(self.db, referral.id, True, ACTOR)

        assert _event_types(self.add_event) == [LeadEventType.NOTE_ADDED]
        assert self.add_event.await_args.args[3] == {"type": "client_flag", "is_client": True}
        assert self.add_event.await_args.args[4] is ACTOR

    @pytest.mark.asyncio
    async def test_qualification_change_is_logged(self):
        referral = make_referral()
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.set_qualification(self.db, referral.id, True, ACTOR)

        assert referral.is_qualified is True
        assert _event_types(self.add_event) == [LeadEventType.QUALIFICATION_CHANGE]
        assert self.add_event.await_args.args[3] == {"is_qualified": True}

    def test_normalize_tags_keeps_order(self):
        assert _normalize_tags(["b", "a", "b", "  c "]) == ["b", "a", "c"]


class TestSetReferringLead(LedgerTestCase):
    @pytest.mark.asyncio
    async def test_self_reference_rejected(self):
        referral = make_referral()
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            with pytest.raises(ReferralCycleError):
                await self.ops.set_referring_lead(self.db, referral.id, referral.id)

        assert referral.referred_by_lead_id is None
        self.add_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transitive_cycle_rejected(self):
        # lead was itself introduced by referral: linking back closes a loop
        referral = make_referral()
        lead_id = uuid.uuid4()
        self.db.execute = AsyncMock(
            return_value=mock_rows_result(
                [SimpleNamespace(id=lead_id, referred_by_lead_id=referral.id)]
            )
        )
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            with pytest.raises(ReferralCycleError):
                await self.ops.set_referring_lead(self.db, referral.id, lead_id)

    @pytest.mark.asyncio
    async def test_valid_link_is_stored(self):
        referral = make_referral()
        lead_id = uuid.uuid4()
        self.db.execute = AsyncMock(
            return_value=mock_rows_result([SimpleNamespace(id=lead_id, referred_by_lead_id=None)])
        )
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.set_referring_lead(self.db, referral.id, lead_id, ACTOR)

        assert referral.referred_by_lead_id == lead_id
        assert _event_types(self.add_event) == [LeadEventType.NOTE_ADDED]
        assert self.add_event.await_args.args[3] == {
            "type": "referring_lead",
            "referred_by_lead_id": str(lead_id),
            "previous_referred_by_lead_id": None,
        }
        assert self.add_event.await_args.args[4] is ACTOR

    @pytest.mark.asyncio
    async def test_unknown_lead_raises_not_found(self):
        referral = make_referral()
        self.db.execute = AsyncMock(return_value=mock_rows_result([]))
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            with pytest.raises(ReferralNotFoundError):
                await self.ops.set_referring_lead(self.db, referral.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_unlink(self):
        previous = uuid.uuid4()
        referral = make_referral(referred_by_lead_id=previous)
        with patch.object(self.ops, "get_for_update", _lock_rows(referral)):
            await self.ops.set_referring_lead(self.db, referral.id, None)

        assert referral.referred_by_lead_id is None
        data = self.add_event.await_args.args[3]
        assert data["referred_by_lead_id"] is None
        assert data["previous_referred_by_lead_id"] == str(previous)


class TestDeleteReferral(LedgerTestCase):
    @pytest.mark.asyncio
    async def test_missing_referral_raises(self):
        with patch.object(self.ops, "delete", AsyncMock(return_value=False)):
            with pytest.raises(ReferralNotFoundError):
                await self.ops.delete_referral(self.db, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_deletes_existing(self):
        delete = AsyncMock(return_value=True)
        referral_id = uuid.uuid4()
        with patch.object(self.ops, "delete", delete):
            await self.ops.delete_referral(self.db, referral_id)

        delete.assert_awaited_once_with(self.db, referral_id)
