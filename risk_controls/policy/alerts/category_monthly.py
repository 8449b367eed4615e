"""Monthly category spending cap.

Sums this calendar month's debits in the rule's category (UTC month
boundaries, category compared case-insensitively) and fires once the total
reaches the threshold. A rule without a category never fires.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from risk_controls.models import AlertMatch, LedgerTransaction, SpendingAlertRule
from risk_controls.policy.alerts.common import in_window, normalize
from risk_controls.policy.limits import format_money


def check_category_monthly(
    rule: SpendingAlertRule,
    transactions: list[LedgerTransaction],
    month_start: datetime,
    currency_symbol: str = "£",
) -> Optional[AlertMatch]:
    if not rule.category or not rule.category.strip():
        return None

    category = normalize(rule.category)
    total = sum(
        (
            t.amount
            for t in in_window(transactions, month_start, rule.account_id)
            if t.direction == "debit"
            and t.category is not None
            and normalize(t.category) == category
        ),
        Decimal("0"),
    )

    if total < rule.threshold_amount:
        return None

    return AlertMatch(
        rule_id=rule.rule_id,
        alert_type=rule.alert_type,
        current_value=total,
        reason=(
            f"Spending on {rule.category} this month is "
            f"{format_money(total, currency_symbol)}, reaching your cap of "
            f"{format_money(rule.threshold_amount, currency_symbol)}"
        ),
    )
