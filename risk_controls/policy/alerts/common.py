"""Helpers shared by the spending alert rule checks."""

from datetime import datetime
from typing import Iterable, Optional

from risk_controls.models import LedgerTransaction


def normalize(text: str) -> str:
    """Lowercase, strip, and collapse internal whitespace."""
    return " ".join(text.strip().lower().split())


def in_window(
    transactions: Iterable[LedgerTransaction],
    window_start: datetime,
    account_id: Optional[str] = None,
) -> list[LedgerTransaction]:
    """Transactions on or after ``window_start``, optionally for one account."""
    return [
        t
        for t in transactions
        if t.transaction_date >= window_start
        and (account_id is None or t.account_id == account_id)
    ]
