"""Payee cooling periods.

A newly added payee must wait the rail's configured number of hours before
its first payment, which blunts authorised push payment scams where a
fraudster talks the customer into adding and paying a new beneficiary in one
sitting. Status is derived lazily from ``created_at`` on every read; there
is no timer that flips payees to cleared.

Once ``first_used_at`` is set, by a real payment or by an admin waiver, the
payee is cleared for good. A waiver is indistinguishable from organic use
except through the audit trail.
"""

import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from risk_controls.errors import PolicyRejection, ValidationError
from risk_controls.models import (
    Actor,
    CoolingPolicyConfig,
    CoolingStatus,
    Payee,
    PayeeCoolingView,
    PayeeCreate,
    PolicyOverrideEvent,
)
from risk_controls.storage.interfaces import AuditTrail, ConfigStore
from risk_controls.storage.memory import MemoryStore

logger = structlog.get_logger()

ONE_HOUR = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def cooling_status(
    payee: Payee,
    config: Optional[CoolingPolicyConfig],
    now: datetime,
) -> CoolingStatus:
    """Compute the cooling status of a payee at ``now``.

    Hours remaining are rounded up, so a payee with a minute left still
    reports one hour rather than implying it is usable already.
    """
    if payee.first_used_at is not None:
        return CoolingStatus(state="cleared", hours_remaining=None)

    if config is None or not config.is_active or config.cooling_hours == 0:
        return CoolingStatus(state="cleared", hours_remaining=None)

    cooling_end = payee.created_at + timedelta(hours=config.cooling_hours)
    if now >= cooling_end:
        return CoolingStatus(
            state="cleared", hours_remaining=0, cooling_hours=config.cooling_hours
        )

    hours_remaining = math.ceil((cooling_end - now) / ONE_HOUR)
    return CoolingStatus(
        state="active",
        hours_remaining=hours_remaining,
        cooling_hours=config.cooling_hours,
    )


def cooling_message(status: CoolingStatus) -> str:
    """Customer-facing explanation of an active cooling period."""
    hours = status.hours_remaining or 0
    plural = "" if hours == 1 else "s"
    return (
        f"For your protection, new payees have a {status.cooling_hours}-hour "
        f"cooling period before the first payment. "
        f"Please try again in {hours} hour{plural}."
    )


class CoolingPeriodManager:
    """Reads cooling status for payees and applies admin waivers."""

    def __init__(
        self,
        store: MemoryStore,
        config_store: ConfigStore,
        audit: AuditTrail,
        default_rail: str = "fps",
        min_reason_length: int = 5,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.config_store = config_store
        self.audit = audit
        self.default_rail = default_rail
        self.min_reason_length = min_reason_length
        self.clock = clock

    async def add_payee(self, data: PayeeCreate) -> Payee:
        """Save a new payee; its cooling period starts now."""
        if not data.name.strip():
            raise ValidationError("Payee name is required")
        payee = Payee(
            payee_id=str(uuid.uuid4()),
            customer_id=data.customer_id,
            name=data.name.strip(),
            sort_code=data.sort_code,
            account_number=data.account_number,
            is_favourite=data.is_favourite,
            created_at=self.clock(),
        )
        await self.store.add_payee(payee)
        logger.info("payee_added", payee_id=payee.payee_id, customer_id=payee.customer_id)
        return payee

    async def status(
        self,
        payee_id: str,
        rail: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CoolingStatus:
        payee = await self.store.get_payee(payee_id)
        config = await self.config_store.get_cooling_config(rail or self.default_rail)
        return cooling_status(payee, config, now or self.clock())

    async def list_for_customer(
        self,
        customer_id: str,
        rail: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[PayeeCoolingView]:
        """Every payee of a customer with its current cooling status."""
        config = await self.config_store.get_cooling_config(rail or self.default_rail)
        now = now or self.clock()
        return [
            PayeeCoolingView(payee=p, status=cooling_status(p, config, now))
            for p in await self.store.list_payees(customer_id)
        ]

    async def ensure_cleared(
        self,
        payee_id: str,
        rail: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CoolingStatus:
        """Raise a ``cooling_active`` rejection unless the payee may be paid."""
        status = await self.status(payee_id, rail, now)
        if status.state == "active":
            raise PolicyRejection(
                "cooling_active",
                cooling_message(status),
                hours_remaining=status.hours_remaining,
                payee_id=payee_id,
            )
        return status

    async def mark_first_used(self, payee_id: str, now: Optional[datetime] = None) -> bool:
        """Record a genuine first payment. A no-op once first use is set."""
        changed = await self.store.set_first_used(payee_id, now or self.clock())
        if changed:
            logger.info("payee_first_used", payee_id=payee_id)
        return changed

    async def waive(
        self,
        payee_id: str,
        reason: str,
        actor: Actor,
        rail: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Payee:
        """Clear a payee's cooling period early.

        The caller must already have checked the actor's capability. The
        audit record is written before success is reported; if that write
        fails the waiver is undone and the error propagates.
        """
        reason = (reason or "").strip()
        if len(reason) < self.min_reason_length:
            raise ValidationError(
                f"A reason is required (minimum {self.min_reason_length} characters)"
            )

        now = now or self.clock()
        payee = await self.store.get_payee(payee_id)
        config = await self.config_store.get_cooling_config(rail or self.default_rail)
        if cooling_status(payee, config, now).state == "cleared":
            raise ValidationError(
                "Cooling period has already been cleared for this payee",
                payee_id=payee_id,
            )

        # A payment may have marked the payee since the status check
        if not await self.store.set_first_used(payee_id, now):
            raise ValidationError(
                "Cooling period has already been cleared for this payee",
                payee_id=payee_id,
            )
        event = PolicyOverrideEvent(
            event_id=str(uuid.uuid4()),
            actor_id=actor.actor_id,
            actor_role=actor.role,
            action="waive_cooling_period",
            target_table="payees",
            target_id=payee_id,
            before={"first_used_at": None},
            after={"first_used_at": now.isoformat()},
            justification=reason,
            details={
                "payee_name": payee.name,
                "sort_code": payee.sort_code,
                "account_number": payee.account_number,
                "customer_id": payee.customer_id,
                "reason": reason,
            },
            timestamp=now,
        )
        try:
            await self.audit.record(event)
        except Exception:
            await self.store.set_first_used(payee_id, None, only_if_unset=False)
            logger.error("cooling_waiver_rolled_back", payee_id=payee_id, exc_info=True)
            raise

        logger.info(
            "cooling_period_waived",
            payee_id=payee_id,
            customer_id=payee.customer_id,
            actor_id=actor.actor_id,
        )
        return await self.store.get_payee(payee_id)
