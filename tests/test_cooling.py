"""Tests for payee cooling periods and admin waivers."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from risk_controls.errors import NotFoundError, PolicyRejection, ValidationError
from risk_controls.models import CoolingPolicyConfig, PayeeCreate
from risk_controls.policy.cooling import CoolingPeriodManager, cooling_message, cooling_status
from tests.conftest import CUSTOMER, NOW, make_payee


def _config(hours=24, active=True):
    return CoolingPolicyConfig(rail="fps", cooling_hours=hours, is_active=active)


class TestCoolingStatus:
    def test_new_payee_is_active(self):
        status = cooling_status(make_payee(), _config(), NOW)
        assert status.state == "active"
        assert status.hours_remaining == 24
        assert status.cooling_hours == 24

    def test_partial_hour_rounds_up(self):
        payee = make_payee(created_at=NOW - timedelta(hours=23, minutes=30))
        status = cooling_status(payee, _config(), NOW)
        assert status.state == "active"
        assert status.hours_remaining == 1

    def test_one_minute_left_still_reports_an_hour(self):
        payee = make_payee(created_at=NOW - timedelta(hours=23, minutes=59))
        assert cooling_status(payee, _config(), NOW).hours_remaining == 1

    def test_cleared_exactly_at_end_of_window(self):
        payee = make_payee(created_at=NOW - timedelta(hours=24))
        status = cooling_status(payee, _config(), NOW)
        assert status.state == "cleared"
        assert status.hours_remaining == 0

    def test_first_used_clears_for_good(self):
        payee = make_payee(first_used_at=NOW)
        status = cooling_status(payee, _config(hours=72), NOW)
        assert status.state == "cleared"
        assert status.hours_remaining is None

    def test_inactive_config_means_no_cooling(self):
        status = cooling_status(make_payee(), _config(active=False), NOW)
        assert status.state == "cleared"

    def test_zero_hours_disables_cooling(self):
        assert cooling_status(make_payee(), _config(hours=0), NOW).state == "cleared"

    def test_missing_config_means_no_cooling(self):
        assert cooling_status(make_payee(), None, NOW).state == "cleared"

    def test_longer_window_uses_configured_hours(self):
        payee = make_payee(created_at=NOW - timedelta(hours=30))
        status = cooling_status(payee, _config(hours=48), NOW)
        assert status.hours_remaining == 18

    def test_hours_remaining_never_increases(self):
        payee = make_payee(created_at=NOW)
        previous = None
        for minutes in range(0, 25 * 60 + 1, 10):
            status = cooling_status(payee, _config(), NOW + timedelta(minutes=minutes))
            if minutes >= 24 * 60:
                assert status.state == "cleared"
                assert status.hours_remaining == 0
            else:
                assert status.state == "active"
                assert 1 <= status.hours_remaining <= 24
            if previous is not None:
                assert status.hours_remaining <= previous
            previous = status.hours_remaining



class TestCoolingMessage:
    def test_message_names_period_and_hours(self):
        status = cooling_status(make_payee(), _config(), NOW)
        msg = cooling_message(status)
        assert "24-hour cooling period" in msg
        assert "try again in 24 hours" in msg

    def test_singular_hour(self):
        payee = make_payee(created_at=NOW - timedelta(hours=23, minutes=10))
        msg = cooling_message(cooling_status(payee, _config(), NOW))
        assert msg.endswith("try again in 1 hour.")


class TestCoolingPeriodManager:
    @pytest.mark.asyncio
    async def test_added_payee_starts_cooling(self, cooling):
        payee = await cooling.add_payee(PayeeCreate(customer_id=CUSTOMER, name="Bob"))
        assert payee.created_at == NOW
        status = await cooling.status(payee.payee_id)
        assert status.state == "active"
        assert status.hours_remaining == 24

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, cooling):
        with pytest.raises(ValidationError):
            await cooling.add_payee(PayeeCreate(customer_id=CUSTOMER, name="   "))

    @pytest.mark.asyncio
    async def test_ensure_cleared_rejects_during_window(self, cooling, store):
        await store.add_payee(make_payee(created_at=NOW - timedelta(hours=1)))
        with pytest.raises(PolicyRejection) as exc_info:
            await cooling.ensure_cleared("payee-1")
        assert exc_info.value.kind == "cooling_active"
        assert exc_info.value.hours_remaining == 23

    @pytest.mark.asyncio
    async def test_ensure_cleared_after_window(self, cooling, store, clock):
        await store.add_payee(make_payee())
        clock.advance(hours=24)
        status = await cooling.ensure_cleared("payee-1")
        assert status.state == "cleared"

    @pytest.mark.asyncio
    async def test_unknown_rail_is_not_found(self, cooling, store):
        await store.add_payee(make_payee())
        with pytest.raises(NotFoundError):
            await cooling.status("payee-1", rail="swift")

    @pytest.mark.asyncio
    async def test_unknown_payee_is_not_found(self, cooling):
        with pytest.raises(NotFoundError):
            await cooling.status("nope")

    @pytest.mark.asyncio
    async def test_mark_first_used_is_write_once(self, cooling, store):
        await store.add_payee(make_payee())
        assert await cooling.mark_first_used("payee-1", NOW) is True
        assert await cooling.mark_first_used("payee-1", NOW + timedelta(hours=5)) is False
        payee = await store.get_payee("payee-1")
        assert payee.first_used_at == NOW

    @pytest.mark.asyncio
    async def test_list_for_customer_newest_first(self, cooling, store):
        await store.add_payee(make_payee("old", created_at=NOW - timedelta(days=3)))
        await store.add_payee(make_payee("new", created_at=NOW - timedelta(hours=2)))
        await store.add_payee(make_payee("theirs", customer_id="someone-else"))
        views = await cooling.list_for_customer(CUSTOMER)
        assert [v.payee.payee_id for v in views] == ["new", "old"]
        assert views[0].status.state == "active"
        assert views[1].status.state == "cleared"


class TestWaiver:
    @pytest.mark.asyncio
    async def test_waiver_clears_and_audits(self, cooling, store, audit, admin):
        await store.add_payee(make_payee())
        payee = await cooling.waive("payee-1", "Customer verified by phone", admin)
        assert payee.first_used_at == NOW
        assert (await cooling.status("payee-1")).state == "cleared"

        events = audit.get_events(action="waive_cooling_period")
        assert len(events) == 1
        event = events[0]
        assert event.actor_id == "admin-1"
        assert event.target_id == "payee-1"
        assert event.justification == "Customer verified by phone"
        assert event.details["payee_name"] == "Alice Smith"
        assert event.details["customer_id"] == CUSTOMER

    @pytest.mark.asyncio
    async def test_short_reason_rejected_without_side_effects(
        self, cooling, store, audit, admin
    ):
        await store.add_payee(make_payee())
        with pytest.raises(ValidationError):
            await cooling.waive("payee-1", "  ok  ", admin)
        assert (await store.get_payee("payee-1")).first_used_at is None
        assert audit.get_events() == []

    @pytest.mark.asyncio
    async def test_already_cleared_payee_cannot_be_waived(self, cooling, store, admin):
        await store.add_payee(make_payee(first_used_at=NOW - timedelta(days=1)))
        with pytest.raises(ValidationError):
            await cooling.waive("payee-1", "Customer verified by phone", admin)

    @pytest.mark.asyncio
    async def test_audit_failure_rolls_back_waiver(self, store, config_store, clock, admin):
        failing_audit = AsyncMock()
        failing_audit.record = AsyncMock(side_effect=RuntimeError("audit store down"))
        manager = CoolingPeriodManager(store, config_store, failing_audit, clock=clock)
        await store.add_payee(make_payee())

        with pytest.raises(RuntimeError):
            await manager.waive("payee-1", "Customer verified by phone", admin)
        assert (await store.get_payee("payee-1")).first_used_at is None

    @pytest.mark.asyncio
    async def test_payment_landing_mid_waiver_wins(
        self, cooling, store, audit, admin, monkeypatch
    ):
        await store.add_payee(make_payee())
        paid_at = NOW - timedelta(minutes=1)
        set_first_used = store.set_first_used

        async def payment_lands_first(payee_id, when, only_if_unset=True):
            await set_first_used(payee_id, paid_at)
            return await set_first_used(payee_id, when, only_if_unset=only_if_unset)

        monkeypatch.setattr(store, "set_first_used", payment_lands_first)

        with pytest.raises(ValidationError):
            await cooling.waive("payee-1", "Customer verified by phone", admin)
        assert (await store.get_payee("payee-1")).first_used_at == paid_at
        assert audit.get_events() == []

