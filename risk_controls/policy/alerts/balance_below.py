"""Low balance alert.

Fires when the rule's account, or any active account of the customer for an
unscoped rule, has an available balance strictly below the threshold. A
rule scoped to an account missing from the snapshot never fires.
"""

from typing import Optional

from risk_controls.models import Account, AlertMatch, SpendingAlertRule
from risk_controls.policy.limits import format_money


def check_balance_below(
    rule: SpendingAlertRule,
    accounts: list[Account],
    currency_symbol: str = "£",
) -> Optional[AlertMatch]:
    if rule.account_id is not None:
        candidates = [a for a in accounts if a.account_id == rule.account_id]
    else:
        candidates = [a for a in accounts if a.is_active]

    for account in candidates:
        if account.available_balance < rule.threshold_amount:
            return AlertMatch(
                rule_id=rule.rule_id,
                alert_type=rule.alert_type,
                current_value=account.available_balance,
                reason=(
                    f"{account.name} balance is "
                    f"{format_money(account.available_balance, currency_symbol)}, "
                    f"below your alert level of "
                    f"{format_money(rule.threshold_amount, currency_symbol)}"
                ),
            )
    return None
