"""Risk & Controls Engine API.

Policy layer between customer-initiated money movements and the ledger.
Enforces payee cooling periods, KYC-tiered transaction limits and strong
customer authentication step-up, evaluates customer spending alerts, and
records every admin override in an audit trail.

Run with:
    python3 -m uvicorn risk_controls.main:app --host 0.0.0.0 --port 8000
"""

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from decimal import Decimal
from pathlib import Path
from typing import Dict

import structlog
from fastapi import FastAPI

from risk_controls.config import Settings, settings
from risk_controls.errors import RiskControlsError
from risk_controls.middleware.error_handler import (
    global_exception_handler,
    risk_controls_exception_handler,
)
from risk_controls.middleware.logging import StructuredLoggingMiddleware
from risk_controls.models import (
    CoolingPolicyConfig,
    PolicySeed,
    ScaConfig,
    ScaConfigEntry,
    TransactionLimitTier,
)
from risk_controls.policy.alert_evaluator import SpendingAlertEvaluator
from risk_controls.policy.alert_rules import AlertRuleService
from risk_controls.policy.cooling import CoolingPeriodManager
from risk_controls.policy.gateway import PolicyGateway
from risk_controls.policy.limits import LimitTierResolver, validate_tier
from risk_controls.policy.overrides import AdminOverrideService
from risk_controls.policy.sca import ScaPolicy
from risk_controls.routes import admin, alerts, audit, payees, payments, sca
from risk_controls.shared.logging import setup_logging
from risk_controls.storage.ledger import InMemoryLedger
from risk_controls.storage.memory import MemoryAuditTrail, MemoryConfigStore, MemoryStore

logger = structlog.get_logger()

# Resolve relative seed paths against the repository root so the server
# works regardless of which directory uvicorn is launched from.
ROOT_DIR = Path(__file__).parent.parent


def default_policy_seed(config: Settings) -> PolicySeed:
    """Policy used when no seed file is present."""
    sca_defaults = ScaConfig()
    return PolicySeed(
        cooling=[
            CoolingPolicyConfig(
                rail=config.default_rail,
                cooling_hours=config.default_cooling_hours,
                description="New payee cooling period",
            )
        ],
        limits=[
            TransactionLimitTier(
                kyc_level="basic",
                single_transaction_limit=Decimal("500"),
                daily_limit=Decimal("1000"),
                monthly_limit=Decimal("5000"),
                description="Basic verification",
            ),
            TransactionLimitTier(
                kyc_level="standard",
                single_transaction_limit=Decimal("2500"),
                daily_limit=Decimal("5000"),
                monthly_limit=Decimal("25000"),
                description="Standard verification",
            ),
            TransactionLimitTier(
                kyc_level="enhanced",
                single_transaction_limit=Decimal("10000"),
                daily_limit=Decimal("25000"),
                monthly_limit=Decimal("100000"),
                description="Enhanced verification",
            ),
        ],
        sca=[
            ScaConfigEntry(
                key="amount_threshold",
                value=str(config.sca_amount_threshold),
                description="Payments at or above this amount need step-up",
            ),
            ScaConfigEntry(key="enabled", value=True),
            ScaConfigEntry(key="max_attempts", value=config.sca_max_attempts),
            ScaConfigEntry(key="expiry_seconds", value=config.sca_expiry_seconds),
            ScaConfigEntry(
                key="sensitive_actions",
                value=list(sca_defaults.sensitive_actions),
            ),
        ],
    )


def load_policy_seed(config: Settings) -> PolicySeed:
    """Load the seed file if there is one, otherwise build the defaults.

    Limit tiers are validated on load; a seed with out-of-order ceilings
    stops startup rather than running with an inconsistent policy.
    """
    path = Path(config.policy_seed_path)
    if not path.is_absolute():
        path = ROOT_DIR / path

    if path.exists():
        with open(path, "r") as f:
            seed = PolicySeed(**json.load(f))
        logger.info("policy_seed_loaded", path=str(path))
    else:
        seed = default_policy_seed(config)
        logger.info("policy_seed_defaults", path=str(path))

    for tier in seed.limits:
        validate_tier(tier)
    return seed


def build_services(app: FastAPI, config: Settings) -> None:
    """Construct the stores and policy components and attach them to app state."""
    config_store = MemoryConfigStore(load_policy_seed(config))
    store = MemoryStore(default_kyc_level=config.default_kyc_level)
    audit_trail = MemoryAuditTrail()
    ledger = InMemoryLedger()

    cooling = CoolingPeriodManager(
        store,
        config_store,
        audit_trail,
        default_rail=config.default_rail,
        min_reason_length=config.waiver_min_reason_length,
    )
    limits = LimitTierResolver(config_store, currency_symbol=config.currency_symbol)
    sca_policy = ScaPolicy(store, config_store)
    evaluator = SpendingAlertEvaluator(
        store,
        ledger,
        window_hours=config.alert_window_hours,
        merchant_match_threshold=config.merchant_match_threshold,
        currency_symbol=config.currency_symbol,
    )

    # Attach to app state for dependency injection in routes
    app.state.config_store = config_store
    app.state.store = store
    app.state.audit = audit_trail
    app.state.ledger = ledger
    app.state.cooling = cooling
    app.state.limits = limits
    app.state.sca = sca_policy
    app.state.alerts = evaluator
    app.state.alert_rules = AlertRuleService(store)
    app.state.gateway = PolicyGateway(
        store, config_store, ledger, cooling, limits, sca_policy, evaluator
    )
    app.state.overrides = AdminOverrideService(
        config_store,
        ledger,
        audit_trail,
        cooling,
        min_note_length=config.credit_min_note_length,
        currency_symbol=config.currency_symbol,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and wire up the policy components."""
    setup_logging(settings.log_level, json_output=settings.log_json)
    logger.info(
        "risk_controls_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )
    build_services(app, settings)
    yield
    logger.info("risk_controls_stopped")


app = FastAPI(
    title="Risk & Controls Engine",
    description=(
        "Policy checks for customer money movements: payee cooling periods, "
        "KYC-tiered limits, strong customer authentication, spending alerts "
        "and audited admin overrides."
    ),
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(StructuredLoggingMiddleware)
app.add_exception_handler(RiskControlsError, risk_controls_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Mount all API routers
app.include_router(payments.router)
app.include_router(payees.router)
app.include_router(sca.router)
app.include_router(alerts.router)
app.include_router(admin.router)
app.include_router(audit.router)


@app.get("/health")
async def health_check() -> Dict[str, str]:
    """Simple health check endpoint."""
    return {"status": "healthy"}
