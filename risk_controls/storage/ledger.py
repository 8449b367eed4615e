"""In-memory stand-in for the external posting engine.

Each account has its own asyncio lock; a movement checks funds, applies the
balance change and records the entry while holding it, so a failure at any
point leaves the balance untouched.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import structlog

from risk_controls.errors import LedgerError, NotFoundError
from risk_controls.models import Account, Direction, LedgerResult, LedgerTransaction

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def day_start(now: datetime) -> datetime:
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def month_start(now: datetime) -> datetime:
    return day_start(now).replace(day=1)


class InMemoryLedger:
    """Accounts and posted transactions with atomic, per-account movements."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._accounts: Dict[str, Account] = {}
        self._transactions: List[LedgerTransaction] = []
        self._locks: Dict[str, asyncio.Lock] = {}
        self._clock = clock

    def open_account(
        self,
        customer_id: str,
        balance: Decimal = Decimal("0"),
        name: str = "Current Account",
        account_id: Optional[str] = None,
    ) -> Account:
        """Create an account (seeding helper, not part of the gateway contract)."""
        account = Account(
            account_id=account_id or str(uuid.uuid4()),
            customer_id=customer_id,
            name=name,
            balance=balance,
            available_balance=balance,
        )
        self._accounts[account.account_id] = account
        return account.model_copy()

    def set_balance(self, account_id: str, balance: Decimal) -> None:
        """Overwrite a balance directly (seeding helper)."""
        account = self._require(account_id)
        account.balance = balance
        account.available_balance = balance

    def add_transaction(self, transaction: LedgerTransaction) -> None:
        """Record historical activity without touching balances (seeding helper)."""
        self._transactions.append(transaction)

    def _require(self, account_id: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError("Account not found", account_id=account_id)
        return account

    def _lock_for(self, account_id: str) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = self._locks[account_id] = asyncio.Lock()
        return lock

    async def atomic_move(
        self,
        account_id: str,
        amount: Decimal,
        description: str,
        metadata: Optional[dict[str, Any]] = None,
        direction: Direction = "debit",
    ) -> LedgerResult:
        """Lock the account, verify funds, apply the movement and record it."""
        metadata = metadata or {}
        if amount <= 0:
            raise LedgerError("Amount must be greater than zero", amount=str(amount))

        async with self._lock_for(account_id):
            account = self._accounts.get(account_id)
            if account is None or not account.is_active:
                raise LedgerError("Account not found or inactive", account_id=account_id)

            if direction == "debit":
                if account.available_balance < amount:
                    raise LedgerError(
                        "Insufficient funds",
                        account_id=account_id,
                        available=str(account.available_balance),
                    )
                new_balance = account.balance - amount
                new_available = account.available_balance - amount
            else:
                new_balance = account.balance + amount
                new_available = account.available_balance + amount

            transaction = LedgerTransaction(
                transaction_id=str(uuid.uuid4()),
                account_id=account_id,
                customer_id=account.customer_id,
                direction=direction,
                amount=amount,
                category=metadata.get("category"),
                counterparty_name=metadata.get("counterparty_name"),
                description=description,
                reference=metadata.get("reference"),
                transaction_date=self._clock(),
                balance_after=new_balance,
            )
            self._transactions.append(transaction)
            account.balance = new_balance
            account.available_balance = new_available

        logger.info(
            "ledger_movement_posted",
            account_id=account_id,
            direction=direction,
            amount=str(amount),
            transaction_id=transaction.transaction_id,
        )
        return LedgerResult(
            transaction_id=transaction.transaction_id, new_balance=new_balance
        )

    async def get_account(self, account_id: str) -> Account:
        return self._require(account_id).model_copy()

    async def list_accounts(self, customer_id: str) -> List[Account]:
        return [
            a.model_copy() for a in self._accounts.values() if a.customer_id == customer_id
        ]

    async def debit_totals(
        self, customer_id: str, now: datetime
    ) -> tuple[Decimal, Decimal]:
        """Completed debits since the start of today and of this month (UTC)."""
        today = day_start(now)
        month = month_start(now)
        daily = Decimal("0")
        monthly = Decimal("0")
        for t in self._transactions:
            if t.customer_id != customer_id or t.direction != "debit":
                continue
            if t.status != "completed":
                continue
            if t.transaction_date >= month:
                monthly += abs(t.amount)
                if t.transaction_date >= today:
                    daily += abs(t.amount)
        return daily, monthly

    async def transactions_since(
        self, customer_id: str, since: datetime
    ) -> List[LedgerTransaction]:
        return [
            t.model_copy()
            for t in self._transactions
            if t.customer_id == customer_id and t.transaction_date >= since
        ]
