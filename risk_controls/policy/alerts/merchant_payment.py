"""Merchant payment alert.

Fires when a transaction with a named counterparty is at or above the
threshold. Names are compared case-insensitively after collapsing
whitespace. Card statements rarely carry a clean merchant name
("TESCO STORES 4412"), so when a match threshold is configured a
thefuzz token-set score at or above it also counts as a match:

  - fuzz.token_set_ratio(): scores 100 when every word of the rule's
    merchant name appears in the counterparty name

A rule without a merchant name never fires.
"""

from datetime import datetime
from typing import Optional

from thefuzz import fuzz

from risk_controls.models import AlertMatch, LedgerTransaction, SpendingAlertRule
from risk_controls.policy.alerts.common import in_window, normalize
from risk_controls.policy.limits import format_money


def merchant_matches(
    merchant_name: str,
    counterparty_name: str,
    threshold: Optional[int] = None,
) -> bool:
    """Whether a counterparty is the rule's merchant."""
    wanted = normalize(merchant_name)
    actual = normalize(counterparty_name)
    if wanted == actual:
        return True
    if threshold is None:
        return False
    return fuzz.token_set_ratio(wanted, actual) >= threshold


def check_merchant_payment(
    rule: SpendingAlertRule,
    transactions: list[LedgerTransaction],
    window_start: datetime,
    match_threshold: Optional[int] = None,
    currency_symbol: str = "£",
) -> Optional[AlertMatch]:
    if not rule.merchant_name or not rule.merchant_name.strip():
        return None

    matches = [
        t
        for t in in_window(transactions, window_start, rule.account_id)
        if t.counterparty_name
        and t.amount >= rule.threshold_amount
        and merchant_matches(rule.merchant_name, t.counterparty_name, match_threshold)
    ]
    if not matches:
        return None

    largest = max(matches, key=lambda t: t.amount)
    return AlertMatch(
        rule_id=rule.rule_id,
        alert_type=rule.alert_type,
        current_value=largest.amount,
        reason=(
            f"Payment of {format_money(largest.amount, currency_symbol)} to "
            f"'{largest.counterparty_name}' matches your {rule.merchant_name} alert"
        ),
    )
