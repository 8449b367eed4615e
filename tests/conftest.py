"""Shared fixtures for the test suite."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from risk_controls.config import Settings
from risk_controls.main import app, default_policy_seed
from risk_controls.models import (
    Actor,
    LedgerTransaction,
    Payee,
    SpendingAlertRule,
    TransactionLimitTier,
)
from risk_controls.policy.alert_evaluator import SpendingAlertEvaluator
from risk_controls.policy.alert_rules import AlertRuleService
from risk_controls.policy.cooling import CoolingPeriodManager
from risk_controls.policy.gateway import PolicyGateway
from risk_controls.policy.limits import LimitTierResolver
from risk_controls.policy.overrides import AdminOverrideService
from risk_controls.policy.sca import ScaPolicy
from risk_controls.storage.ledger import InMemoryLedger
from risk_controls.storage.memory import MemoryAuditTrail, MemoryConfigStore, MemoryStore

# A Tuesday in the middle of the month, well clear of day/month boundaries
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

CUSTOMER = "cust-1"
OTHER_CUSTOMER = "cust-2"


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def config_store(settings):
    return MemoryConfigStore(default_policy_seed(settings))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def audit():
    return MemoryAuditTrail()


@pytest.fixture
def ledger(clock):
    return InMemoryLedger(clock=clock)


@pytest.fixture
def account(ledger):
    return ledger.open_account(CUSTOMER, Decimal("10000"), account_id="acc-1")


@pytest.fixture
def cooling(store, config_store, audit, clock):
    return CoolingPeriodManager(store, config_store, audit, clock=clock)


@pytest.fixture
def limits(config_store):
    return LimitTierResolver(config_store)


@pytest.fixture
def sca(store, config_store, clock):
    return ScaPolicy(store, config_store, clock=clock)


@pytest.fixture
def evaluator(store, ledger, clock):
    return SpendingAlertEvaluator(store, ledger, clock=clock)


@pytest.fixture
def alert_rules(store, clock):
    return AlertRuleService(store, clock=clock)


@pytest.fixture
def gateway(store, config_store, ledger, cooling, limits, sca, evaluator, clock):
    return PolicyGateway(
        store, config_store, ledger, cooling, limits, sca, evaluator, clock=clock
    )


@pytest.fixture
def overrides(config_store, ledger, audit, cooling, clock):
    return AdminOverrideService(config_store, ledger, audit, cooling, clock=clock)


@pytest.fixture
def admin():
    return Actor(actor_id="admin-1", role="admin")


@pytest.fixture
def super_admin():
    return Actor(actor_id="root-1", role="super_admin")


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def make_payee(
    payee_id="payee-1",
    customer_id=CUSTOMER,
    name="Alice Smith",
    created_at=NOW,
    first_used_at=None,
) -> Payee:
    return Payee(
        payee_id=payee_id,
        customer_id=customer_id,
        name=name,
        sort_code="04-00-04",
        account_number="12345678",
        created_at=created_at,
        first_used_at=first_used_at,
    )


def make_tier(
    single="500",
    daily="1000",
    monthly="5000",
    kyc_level="basic",
    is_active=True,
) -> TransactionLimitTier:
    return TransactionLimitTier(
        kyc_level=kyc_level,
        single_transaction_limit=Decimal(single),
        daily_limit=Decimal(daily),
        monthly_limit=Decimal(monthly),
        is_active=is_active,
    )


def make_rule(
    alert_type="single_transaction",
    threshold="100",
    rule_id="rule-1",
    customer_id=CUSTOMER,
    **kwargs,
) -> SpendingAlertRule:
    return SpendingAlertRule(
        rule_id=rule_id,
        customer_id=customer_id,
        name=kwargs.pop("name", "Test alert"),
        alert_type=alert_type,
        threshold_amount=Decimal(threshold),
        **kwargs,
    )


def make_txn(
    amount="50",
    direction="debit",
    when=NOW,
    category=None,
    counterparty=None,
    account_id="acc-1",
    customer_id=CUSTOMER,
    tx_id="tx-1",
    status="completed",
) -> LedgerTransaction:
    return LedgerTransaction(
        transaction_id=tx_id,
        account_id=account_id,
        customer_id=customer_id,
        direction=direction,
        amount=Decimal(amount),
        category=category,
        counterparty_name=counterparty,
        description="test",
        status=status,
        transaction_date=when,
        balance_after=Decimal("0"),
    )
