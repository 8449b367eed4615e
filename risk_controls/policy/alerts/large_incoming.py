"""Large incoming payment alert.

Same as the single transaction alert, restricted to credits.
"""

from datetime import datetime
from typing import Optional

from risk_controls.models import AlertMatch, LedgerTransaction, SpendingAlertRule
from risk_controls.policy.alerts.common import in_window
from risk_controls.policy.limits import format_money


def check_large_incoming(
    rule: SpendingAlertRule,
    transactions: list[LedgerTransaction],
    window_start: datetime,
    currency_symbol: str = "£",
) -> Optional[AlertMatch]:
    credits = [
        t
        for t in in_window(transactions, window_start, rule.account_id)
        if t.direction == "credit" and t.amount >= rule.threshold_amount
    ]
    if not credits:
        return None

    largest = max(credits, key=lambda t: t.amount)
    return AlertMatch(
        rule_id=rule.rule_id,
        alert_type=rule.alert_type,
        current_value=largest.amount,
        reason=(
            f"Incoming payment of {format_money(largest.amount, currency_symbol)} "
            f"reached your alert threshold of "
            f"{format_money(rule.threshold_amount, currency_symbol)}"
        ),
    )
