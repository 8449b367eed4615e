"""Admin override operations.

Every override follows the same shape: check the actor's capability, read
the prior state, validate and apply the new state, then write an audit
record holding both. The audit write is awaited before the operation
reports success; if it fails the change is undone and the error propagates,
so there is never an override without its audit record.

Config edits bump the store revision, which is how policy decisions tell a
fresh configuration from the one they were made against.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, get_args

import structlog

from risk_controls.errors import NotFoundError, ValidationError
from risk_controls.models import (
    Actor,
    CoolingConfigUpdate,
    CoolingPolicyConfig,
    KycLevel,
    LedgerResult,
    LimitTierUpdate,
    ManualCreditRequest,
    Payee,
    PolicyOverrideEvent,
    ScaConfigEntry,
    TransactionLimitTier,
)
from risk_controls.policy.capabilities import require_capability
from risk_controls.policy.cooling import CoolingPeriodManager
from risk_controls.policy.limits import format_money, validate_tier
from risk_controls.storage.interfaces import AuditTrail, ConfigStore, LedgerGateway

logger = structlog.get_logger()

CREDIT_DESCRIPTIONS = {
    "refund": "Refund",
    "goodwill": "Goodwill Payment",
    "correction": "Balance Correction",
    "promotional": "Promotional Credit",
    "compensation": "Compensation Payment",
    "interest_adjustment": "Interest Adjustment",
    "fee_reversal": "Fee Reversal",
    "other": "Account Credit",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_int(key: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{key} must be a whole number", key=key)
    try:
        number = int(value)
    except ValueError:
        raise ValidationError(f"{key} must be a whole number", key=key) from None
    if number < minimum:
        raise ValidationError(f"{key} must be at least {minimum}", key=key)
    return number


def validate_sca_value(key: str, value: Any) -> Any:
    """Coerce and check a value for one of the known SCA keys."""
    if key == "amount_threshold":
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError("amount_threshold must be a number", key=key) from None
        if isinstance(value, bool) or not amount.is_finite() or amount <= 0:
            raise ValidationError("amount_threshold must be greater than zero", key=key)
        return str(amount)
    if key == "enabled":
        if not isinstance(value, bool):
            raise ValidationError("enabled must be true or false", key=key)
        return value
    if key in ("max_attempts", "expiry_seconds"):
        return _as_int(key, value, 1)
    if key == "sensitive_actions":
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValidationError("sensitive_actions must be a list of action names", key=key)
        return [v.strip() for v in value if v.strip()]
    raise ValidationError(f"Unknown SCA setting '{key}'", key=key)


class AdminOverrideService:
    """Waivers, policy configuration edits and manual credits."""

    def __init__(
        self,
        config_store: ConfigStore,
        ledger: LedgerGateway,
        audit: AuditTrail,
        cooling: CoolingPeriodManager,
        min_note_length: int = 5,
        currency_symbol: str = "£",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config_store = config_store
        self.ledger = ledger
        self.audit = audit
        self.cooling = cooling
        self.min_note_length = min_note_length
        self.currency_symbol = currency_symbol
        self.clock = clock

    async def _record(
        self,
        actor: Actor,
        action: str,
        target_table: str,
        target_id: str,
        before: dict[str, Any],
        after: dict[str, Any],
        now: datetime,
        justification: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> PolicyOverrideEvent:
        event = PolicyOverrideEvent(
            event_id=str(uuid.uuid4()),
            actor_id=actor.actor_id,
            actor_role=actor.role,
            action=action,
            target_table=target_table,
            target_id=target_id,
            before=before,
            after=after,
            justification=justification,
            details=details or {},
            timestamp=now,
        )
        await self.audit.record(event)
        return event

    async def waive_cooling_period(
        self,
        actor: Actor,
        payee_id: str,
        reason: str,
        rail: Optional[str] = None,
    ) -> Payee:
        require_capability(actor, "waive_cooling_period")
        return await self.cooling.waive(payee_id, reason, actor, rail)

    async def update_limit_tier(
        self, actor: Actor, kyc_level: str, update: LimitTierUpdate
    ) -> TransactionLimitTier:
        require_capability(actor, "update_limit_tier")
        if kyc_level not in get_args(KycLevel):
            raise ValidationError(f"Invalid KYC level '{kyc_level}'", kyc_level=kyc_level)

        now = self.clock()
        prior = await self.config_store.get_limit_tier(kyc_level)
        changes = update.model_dump(exclude_none=True)
        updated = prior.model_copy(update={**changes, "updated_at": now})
        validate_tier(updated)

        await self.config_store.put_limit_tier(updated)
        try:
            await self._record(
                actor,
                "transaction_limit_updated",
                "transaction_limits",
                kyc_level,
                before=_tier_values(prior),
                after=_tier_values(updated),
                now=now,
                details={"kyc_level": kyc_level},
            )
        except Exception:
            await self.config_store.put_limit_tier(prior)
            logger.error("limit_update_rolled_back", kyc_level=kyc_level, exc_info=True)
            raise

        logger.info(
            "transaction_limit_updated",
            kyc_level=kyc_level,
            actor_id=actor.actor_id,
            changes=sorted(changes),
        )
        return updated

    async def update_cooling_config(
        self, actor: Actor, rail: str, update: CoolingConfigUpdate
    ) -> CoolingPolicyConfig:
        require_capability(actor, "update_cooling_config")
        if update.cooling_hours is not None and update.cooling_hours < 0:
            raise ValidationError("Cooling hours must not be negative", rail=rail)

        now = self.clock()
        prior = await self.config_store.get_cooling_config(rail)
        changes = update.model_dump(exclude_none=True)
        updated = prior.model_copy(update={**changes, "updated_at": now})

        await self.config_store.put_cooling_config(updated)
        try:
            await self._record(
                actor,
                "cooling_period_updated",
                "cooling_period_config",
                prior.rail,
                before={"cooling_hours": prior.cooling_hours, "is_active": prior.is_active},
                after={"cooling_hours": updated.cooling_hours, "is_active": updated.is_active},
                now=now,
                details={"payment_rail": prior.rail},
            )
        except Exception:
            await self.config_store.put_cooling_config(prior)
            logger.error("cooling_update_rolled_back", rail=rail, exc_info=True)
            raise

        logger.info(
            "cooling_period_updated",
            rail=prior.rail,
            actor_id=actor.actor_id,
            cooling_hours=updated.cooling_hours,
            is_active=updated.is_active,
        )
        return updated

    async def update_sca_config(self, actor: Actor, key: str, value: Any) -> ScaConfigEntry:
        require_capability(actor, "update_sca_config")
        clean_value = validate_sca_value(key, value)

        now = self.clock()
        try:
            prior: Optional[ScaConfigEntry] = await self.config_store.get_sca_entry(key)
        except NotFoundError:
            prior = None

        if prior is not None:
            updated = prior.model_copy(update={"value": clean_value, "updated_at": now})
        else:
            updated = ScaConfigEntry(key=key, value=clean_value, updated_at=now)

        await self.config_store.put_sca_entry(updated)
        try:
            await self._record(
                actor,
                "sca_config_updated",
                "sca_config",
                key,
                before={"value": prior.value if prior is not None else None},
                after={"value": clean_value},
                now=now,
            )
        except Exception:
            if prior is not None:
                await self.config_store.put_sca_entry(prior)
            else:
                await self.config_store.delete_sca_entry(key)
            logger.error("sca_update_rolled_back", key=key, exc_info=True)
            raise

        logger.info("sca_config_updated", key=key, actor_id=actor.actor_id)
        return updated

    async def credit_customer_account(
        self, actor: Actor, data: ManualCreditRequest
    ) -> LedgerResult:
        """Apply a manual credit through the ledger's atomic move.

        If the audit write fails after the ledger accepted the credit, a
        reversing debit is posted before the error propagates.
        """
        require_capability(actor, "manual_credit")
        if data.amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        if data.reason not in CREDIT_DESCRIPTIONS:
            raise ValidationError("Invalid credit reason")
        note = data.note.strip()
        if len(note) < self.min_note_length:
            raise ValidationError(
                f"Note must be at least {self.min_note_length} characters"
            )

        account = await self.ledger.get_account(data.account_id)
        customer_reason = CREDIT_DESCRIPTIONS[data.reason]
        reference = data.reference.strip() if data.reference else None
        metadata = {"category": "credit", "reference": reference}

        now = self.clock()
        result = await self.ledger.atomic_move(
            data.account_id,
            data.amount,
            f"{customer_reason} - {note}",
            metadata,
            direction="credit",
        )
        try:
            await self._record(
                actor,
                "admin_credit_applied",
                "accounts",
                data.account_id,
                before={"balance": str(account.balance)},
                after={"balance": str(result.new_balance)},
                now=now,
                justification=note,
                details={
                    "customer_id": account.customer_id,
                    "account_name": account.name,
                    "amount": str(data.amount),
                    "reason": data.reason,
                    "reference": reference,
                    "transaction_id": result.transaction_id,
                },
            )
        except Exception:
            await self.ledger.atomic_move(
                data.account_id,
                data.amount,
                f"Reversal of {customer_reason.lower()}",
                {"category": "credit", "reversal_of": result.transaction_id},
                direction="debit",
            )
            logger.error(
                "manual_credit_reversed",
                account_id=data.account_id,
                transaction_id=result.transaction_id,
                exc_info=True,
            )
            raise

        logger.info(
            "manual_credit_applied",
            account_id=data.account_id,
            customer_id=account.customer_id,
            amount=format_money(data.amount, self.currency_symbol),
            actor_id=actor.actor_id,
        )
        return result


def _tier_values(tier: TransactionLimitTier) -> dict[str, Any]:
    return {
        "single": str(tier.single_transaction_limit),
        "daily": str(tier.daily_limit),
        "monthly": str(tier.monthly_limit),
        "is_active": tier.is_active,
    }
