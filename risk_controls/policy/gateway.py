"""Policy gateway for money-movement requests.

Every customer payment passes through here before the ledger sees it.
Checks run in a fixed order so the same input always fails for the same
reason, and the cheap local checks run before anything touches the write
path:

  1. Cooling period (payee payments only)
  2. KYC-tier limits against today's and this month's debits
  3. Strong customer authentication step-up
  4. Atomic ledger post

The customer's KYC level is an input owned by onboarding, not by this
engine. It is read through the store's ``get_kyc_level`` for every request,
and a customer the store has no level for gets the configured default
(``RISK_DEFAULT_KYC_LEVEL``, ``basic`` unless set).

Configuration is re-read for every request and the decision records the
config revision it was made against. There is no retry loop: a rejected
request is final and a resubmission runs every check again. Any check that
cannot be completed rejects the request rather than letting it through.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from risk_controls.errors import (
    LedgerError,
    NotFoundError,
    PolicyRejection,
    RiskControlsError,
)
from risk_controls.models import (
    GatewayState,
    LedgerResult,
    MoneyMovementRequest,
    PolicyDecision,
    RejectionDetail,
)
from risk_controls.policy.alert_evaluator import SpendingAlertEvaluator
from risk_controls.policy.cooling import CoolingPeriodManager
from risk_controls.policy.limits import LimitTierResolver, raise_for_limits
from risk_controls.policy.sca import ScaPolicy
from risk_controls.storage.interfaces import ConfigStore, LedgerGateway
from risk_controls.storage.memory import MemoryStore

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PolicyGateway:
    """Composes cooling, limits and SCA into one decision, then posts."""

    def __init__(
        self,
        store: MemoryStore,
        config_store: ConfigStore,
        ledger: LedgerGateway,
        cooling: CoolingPeriodManager,
        limits: LimitTierResolver,
        sca: ScaPolicy,
        alerts: SpendingAlertEvaluator,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.config_store = config_store
        self.ledger = ledger
        self.cooling = cooling
        self.limits = limits
        self.sca = sca
        self.alerts = alerts
        self.clock = clock

    async def submit(
        self, request: MoneyMovementRequest, now: Optional[datetime] = None
    ) -> PolicyDecision:
        """Run a request through every check and, if approved, post it."""
        request_id = str(uuid.uuid4())
        now = now or self.clock()
        history: list[GatewayState] = ["received"]
        log = logger.bind(
            request_id=request_id,
            customer_id=request.customer_id,
            account_id=request.account_id,
            amount=str(request.amount),
        )

        revision = 0
        try:
            revision = await self.config_store.get_revision()
            sca_used = await self._run_checks(request, now, history)
        except PolicyRejection as exc:
            if exc.kind == "sca_required":
                history.append("sca_required")
                log.info("payment_sca_required")
                return PolicyDecision(
                    request_id=request_id,
                    status="sca_required",
                    state_history=history,
                    rejection=RejectionDetail(kind=exc.kind, message=exc.message),
                    config_revision=revision,
                )
            log.info("payment_rejected", kind=exc.kind)
            return self._rejected(
                request_id, history, exc.kind, exc.message, revision, exc.hours_remaining
            )
        except RiskControlsError as exc:
            log.warning("payment_check_failed", code=exc.code, error=exc.message)
            return self._rejected(request_id, history, exc.code, exc.message, revision)
        except Exception:
            log.exception("payment_check_unavailable")
            return self._rejected(
                request_id,
                history,
                "policy_unavailable",
                "We couldn't complete our security checks. Please try again shortly.",
                revision,
            )

        history.append("approved")
        try:
            # Once issued, the post runs to completion even if the caller goes away
            result = await asyncio.shield(self._post(request, now, sca_used))
        except LedgerError as exc:
            log.warning("payment_ledger_failed", error=exc.message, **exc.details)
            return self._rejected(request_id, history, exc.code, exc.message, revision)

        history.append("ledger_posted")
        log.info("payment_posted", transaction_id=result.transaction_id)

        triggered: list[str] = []
        try:
            matches = await self.alerts.run(request.customer_id, now)
            triggered = [m.rule_id for m in matches]
        except Exception:
            # The money has moved; alert failures must not report it as failed
            log.exception("alert_evaluation_failed")

        return PolicyDecision(
            request_id=request_id,
            status="ledger_posted",
            state_history=history,
            transaction_id=result.transaction_id,
            new_balance=result.new_balance,
            triggered_alerts=triggered,
            config_revision=revision,
        )

    async def _run_checks(
        self,
        request: MoneyMovementRequest,
        now: datetime,
        history: list[GatewayState],
    ) -> bool:
        account = await self.ledger.get_account(request.account_id)
        if account.customer_id != request.customer_id:
            raise NotFoundError("Account not found", account_id=request.account_id)
        if request.payee_id is not None:
            payee = await self.store.get_payee(request.payee_id)
            if payee.customer_id != request.customer_id:
                raise NotFoundError("Payee not found", payee_id=request.payee_id)
            await self.cooling.ensure_cleared(request.payee_id, request.rail, now)
        history.append("cooling_checked")

        kyc_level = await self.store.get_kyc_level(request.customer_id)
        daily_total, monthly_total = await self.ledger.debit_totals(request.customer_id, now)
        result = await self.limits.check(
            kyc_level, request.amount, daily_total, monthly_total
        )
        raise_for_limits(result)
        history.append("limit_checked")

        return await self.sca.ensure_step_up(
            request.customer_id,
            request.amount,
            request.action,
            request.sca_challenge_id,
        )

    async def _post(
        self, request: MoneyMovementRequest, now: datetime, sca_used: bool
    ) -> LedgerResult:
        metadata = dict(request.metadata)
        metadata.setdefault("category", request.category or "transfer")
        if request.reference:
            metadata["reference"] = request.reference

        description = request.description or "Payment"
        if request.payee_id is not None:
            payee = await self.store.get_payee(request.payee_id)
            metadata["counterparty_name"] = payee.name
            metadata["payee_id"] = payee.payee_id
            description = request.description or f"Payment to {payee.name}"

        result = await self.ledger.atomic_move(
            request.account_id, request.amount, description, metadata, direction="debit"
        )

        try:
            if request.payee_id is not None:
                await self.cooling.mark_first_used(request.payee_id, now)
            if sca_used and request.sca_challenge_id:
                await self.sca.consume(request.sca_challenge_id)
        except Exception:
            # The ledger accepted the debit; report it as posted regardless
            logger.exception(
                "post_ledger_bookkeeping_failed",
                transaction_id=result.transaction_id,
                payee_id=request.payee_id,
                sca_challenge_id=request.sca_challenge_id,
            )
        return result


    def _rejected(
        self,
        request_id: str,
        history: list[GatewayState],
        kind: str,
        message: str,
        revision: int,
        hours_remaining: Optional[int] = None,
    ) -> PolicyDecision:
        history.append("rejected")
        return PolicyDecision(
            request_id=request_id,
            status="rejected",
            state_history=history,
            rejection=RejectionDetail(
                kind=kind, message=message, hours_remaining=hours_remaining
            ),
            config_revision=revision,
        )
