"""Tiered transaction limits keyed to KYC verification level.

Checks run cheapest and most specific first: the single-transaction ceiling,
then today's running total, then this month's. The first breach wins, so
the reason reported is always the narrowest one that applies. A ceiling is
breached only when strictly exceeded; landing exactly on it is allowed.

A tier marked inactive lifts its restriction entirely rather than blocking
all activity. Deactivating a tier is a deliberate "no limit" switch.
"""

from decimal import Decimal

from risk_controls.errors import ConfigInconsistency, PolicyRejection, ValidationError
from risk_controls.models import LimitCheckResult, TransactionLimitTier
from risk_controls.storage.interfaces import ConfigStore

_REJECTION_KINDS = {
    "single": "limit_single",
    "daily": "limit_daily",
    "monthly": "limit_monthly",
}


def format_money(amount: Decimal, symbol: str = "£") -> str:
    return f"{symbol}{amount:,.2f}"


def validate_tier(tier: TransactionLimitTier) -> None:
    """Refuse a tier that is negative or whose ceilings are out of order."""
    for field in ("single_transaction_limit", "daily_limit", "monthly_limit"):
        if getattr(tier, field) < 0:
            raise ValidationError(f"{field} must not be negative", kyc_level=tier.kyc_level)

    if tier.single_transaction_limit > tier.daily_limit:
        raise ConfigInconsistency(
            "Single transaction limit cannot exceed the daily limit",
            kyc_level=tier.kyc_level,
        )
    if tier.daily_limit > tier.monthly_limit:
        raise ConfigInconsistency(
            "Daily limit cannot exceed the monthly limit",
            kyc_level=tier.kyc_level,
        )


def evaluate_limits(
    tier: TransactionLimitTier,
    amount: Decimal,
    daily_total: Decimal,
    monthly_total: Decimal,
    currency_symbol: str = "£",
) -> LimitCheckResult:
    """Pure limit check against an already-resolved tier."""
    if not tier.is_active:
        return LimitCheckResult(
            allowed=True, daily_used=daily_total, monthly_used=monthly_total
        )

    base = dict(
        single_limit=tier.single_transaction_limit,
        daily_limit=tier.daily_limit,
        monthly_limit=tier.monthly_limit,
        daily_used=daily_total,
        monthly_used=monthly_total,
    )

    if amount > tier.single_transaction_limit:
        return LimitCheckResult(
            allowed=False,
            exceeded="single",
            reason=(
                "This transaction exceeds your single payment limit of "
                f"{format_money(tier.single_transaction_limit, currency_symbol)}. "
                "Please contact us to increase your limits."
            ),
            **base,
        )

    if daily_total + amount > tier.daily_limit:
        return LimitCheckResult(
            allowed=False,
            exceeded="daily",
            reason=(
                "This transaction would exceed your daily limit of "
                f"{format_money(tier.daily_limit, currency_symbol)}. You have used "
                f"{format_money(daily_total, currency_symbol)} today."
            ),
            **base,
        )

    if monthly_total + amount > tier.monthly_limit:
        return LimitCheckResult(
            allowed=False,
            exceeded="monthly",
            reason=(
                "This transaction would exceed your monthly limit of "
                f"{format_money(tier.monthly_limit, currency_symbol)}. You have used "
                f"{format_money(monthly_total, currency_symbol)} this month."
            ),
            **base,
        )

    return LimitCheckResult(allowed=True, **base)


def raise_for_limits(result: LimitCheckResult) -> None:
    """Turn a failed check into the matching policy rejection."""
    if result.allowed:
        return
    kind = _REJECTION_KINDS[result.exceeded or "single"]
    raise PolicyRejection(kind, result.reason or "Transaction limit exceeded")


class LimitTierResolver:
    """Looks up the tier for a KYC level and evaluates a proposed amount.

    Accumulating the daily and monthly totals is the caller's job.
    """

    def __init__(self, config_store: ConfigStore, currency_symbol: str = "£") -> None:
        self.config_store = config_store
        self.currency_symbol = currency_symbol

    async def check(
        self,
        kyc_level: str,
        amount: Decimal,
        daily_total: Decimal = Decimal("0"),
        monthly_total: Decimal = Decimal("0"),
    ) -> LimitCheckResult:
        tier = await self.config_store.get_limit_tier(kyc_level)
        return evaluate_limits(
            tier, amount, daily_total, monthly_total, self.currency_symbol
        )
