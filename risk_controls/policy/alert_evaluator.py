"""Spending alert evaluation.

Runs each active rule through the check for its kind and collects the
matches. Evaluation is a pure function of its inputs: the same rules,
transactions, balances and clock always give the same result. Recording a
trigger only bumps the rule's informational counters; nothing here
remembers that a customer was already told, so re-evaluating unchanged data
counts again.

A rule whose configuration cannot match (a category cap with no category,
a merchant alert with no merchant) simply never fires, so one bad rule
cannot stop the others being evaluated.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from risk_controls.models import (
    Account,
    AlertMatch,
    LedgerTransaction,
    SpendingAlertRule,
)
from risk_controls.policy.alerts.balance_below import check_balance_below
from risk_controls.policy.alerts.category_monthly import check_category_monthly
from risk_controls.policy.alerts.large_incoming import check_large_incoming
from risk_controls.policy.alerts.merchant_payment import check_merchant_payment
from risk_controls.policy.alerts.single_transaction import check_single_transaction
from risk_controls.storage.interfaces import LedgerGateway
from risk_controls.storage.ledger import month_start
from risk_controls.storage.memory import MemoryStore

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def evaluate_rules(
    rules: list[SpendingAlertRule],
    transactions: list[LedgerTransaction],
    accounts: list[Account],
    now: datetime,
    window_hours: int = 24,
    merchant_match_threshold: Optional[int] = None,
    currency_symbol: str = "£",
) -> list[AlertMatch]:
    """Match every active rule against activity and balances at ``now``."""
    window_start = now - timedelta(hours=window_hours)
    current_month = month_start(now)
    matches: list[AlertMatch] = []

    for rule in rules:
        if not rule.is_active:
            continue

        if rule.alert_type == "single_transaction":
            match = check_single_transaction(rule, transactions, window_start, currency_symbol)
        elif rule.alert_type == "category_monthly":
            match = check_category_monthly(rule, transactions, current_month, currency_symbol)
        elif rule.alert_type == "balance_below":
            match = check_balance_below(rule, accounts, currency_symbol)
        elif rule.alert_type == "merchant_payment":
            match = check_merchant_payment(
                rule, transactions, window_start, merchant_match_threshold, currency_symbol
            )
        elif rule.alert_type == "large_incoming":
            match = check_large_incoming(rule, transactions, window_start, currency_symbol)
        else:
            match = None

        if match is not None:
            matches.append(match)

    return matches


class SpendingAlertEvaluator:
    """Evaluates a customer's alert rules and records triggers."""

    def __init__(
        self,
        store: MemoryStore,
        ledger: LedgerGateway,
        window_hours: int = 24,
        merchant_match_threshold: Optional[int] = None,
        currency_symbol: str = "£",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.window_hours = window_hours
        self.merchant_match_threshold = merchant_match_threshold
        self.currency_symbol = currency_symbol
        self.clock = clock

    def evaluate(
        self,
        rules: list[SpendingAlertRule],
        recent_transactions: list[LedgerTransaction],
        account_snapshot: list[Account],
        now: Optional[datetime] = None,
    ) -> set[str]:
        """Ids of the rules currently triggered. Does not touch any state."""
        matches = evaluate_rules(
            rules,
            recent_transactions,
            account_snapshot,
            now or self.clock(),
            self.window_hours,
            self.merchant_match_threshold,
            self.currency_symbol,
        )
        return {m.rule_id for m in matches}

    async def run(
        self, customer_id: str, now: Optional[datetime] = None
    ) -> list[AlertMatch]:
        """Fetch the customer's rules and activity, evaluate, record triggers."""
        now = now or self.clock()
        rules = await self.store.list_alert_rules(customer_id, active_only=True)
        if not rules:
            return []

        since = min(now - timedelta(hours=self.window_hours), month_start(now))
        transactions = await self.ledger.transactions_since(customer_id, since)
        accounts = await self.ledger.list_accounts(customer_id)

        matches = evaluate_rules(
            rules,
            transactions,
            accounts,
            now,
            self.window_hours,
            self.merchant_match_threshold,
            self.currency_symbol,
        )
        for match in matches:
            await self.store.record_alert_trigger(match.rule_id, now)

        if matches:
            logger.info(
                "spending_alerts_triggered",
                customer_id=customer_id,
                rule_ids=[m.rule_id for m in matches],
            )
        return matches
