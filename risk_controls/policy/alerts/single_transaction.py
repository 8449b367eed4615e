"""Large single transaction alert.

Fires when any transaction in the evaluation window, in either direction,
is at or above the customer's threshold. Scoped to one account when the
rule names one.
"""

from datetime import datetime
from typing import Optional

from risk_controls.models import AlertMatch, LedgerTransaction, SpendingAlertRule
from risk_controls.policy.alerts.common import in_window
from risk_controls.policy.limits import format_money


def check_single_transaction(
    rule: SpendingAlertRule,
    transactions: list[LedgerTransaction],
    window_start: datetime,
    currency_symbol: str = "£",
) -> Optional[AlertMatch]:
    """Return a match for the largest qualifying transaction, if any."""
    matches = [
        t
        for t in in_window(transactions, window_start, rule.account_id)
        if t.amount >= rule.threshold_amount
    ]
    if not matches:
        return None

    largest = max(matches, key=lambda t: t.amount)
    return AlertMatch(
        rule_id=rule.rule_id,
        alert_type=rule.alert_type,
        current_value=largest.amount,
        reason=(
            f"Transaction of {format_money(largest.amount, currency_symbol)} "
            f"reached your alert threshold of "
            f"{format_money(rule.threshold_amount, currency_symbol)}"
        ),
    )
