"""Pydantic models for the risk and controls engine."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

KycLevel = Literal["basic", "standard", "enhanced"]
ActorRole = Literal["admin", "super_admin"]
AlertType = Literal[
    "single_transaction",
    "category_monthly",
    "balance_below",
    "merchant_payment",
    "large_incoming",
]
Direction = Literal["debit", "credit"]
CoolingState = Literal["active", "cleared"]
LimitKind = Literal["single", "daily", "monthly"]
GatewayState = Literal[
    "received",
    "cooling_checked",
    "limit_checked",
    "sca_required",
    "approved",
    "ledger_posted",
    "rejected",
]
DecisionStatus = Literal["ledger_posted", "rejected", "sca_required"]
CreditReason = Literal[
    "refund",
    "goodwill",
    "correction",
    "promotional",
    "compensation",
    "interest_adjustment",
    "fee_reversal",
    "other",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Actor(BaseModel):
    """An already-authenticated caller, resolved to a role upstream."""
    actor_id: str
    role: ActorRole


# --- Payees and cooling ---------------------------------------------------


class Payee(BaseModel):
    """A saved payment beneficiary and its cooling-period state."""
    payee_id: str
    customer_id: str
    name: str
    sort_code: Optional[str] = None
    account_number: Optional[str] = None
    created_at: datetime
    # Set by the first genuine payment or by an admin waiver, never cleared
    first_used_at: Optional[datetime] = None
    is_favourite: bool = False


class PayeeCreate(BaseModel):
    customer_id: str
    name: str
    sort_code: Optional[str] = None
    account_number: Optional[str] = None
    is_favourite: bool = False


class CoolingPolicyConfig(BaseModel):
    """Cooling-period configuration for one payment rail."""
    rail: str
    cooling_hours: int = Field(default=24, ge=0)  # 0 disables cooling
    is_active: bool = True
    description: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)


class CoolingConfigUpdate(BaseModel):
    cooling_hours: Optional[int] = None
    is_active: Optional[bool] = None
    description: Optional[str] = None


class CoolingStatus(BaseModel):
    """Derived cooling status of a payee at a point in time."""
    state: CoolingState
    hours_remaining: Optional[int] = None
    cooling_hours: int = 0


class PayeeCoolingView(BaseModel):
    payee: Payee
    status: CoolingStatus


# --- Limits ---------------------------------------------------------------


class TransactionLimitTier(BaseModel):
    """Single, daily and monthly ceilings for one KYC level."""
    kyc_level: KycLevel
    single_transaction_limit: Decimal
    daily_limit: Decimal
    monthly_limit: Decimal
    is_active: bool = True
    description: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)


class LimitTierUpdate(BaseModel):
    single_transaction_limit: Optional[Decimal] = None
    daily_limit: Optional[Decimal] = None
    monthly_limit: Optional[Decimal] = None
    is_active: Optional[bool] = None


class LimitCheckResult(BaseModel):
    """Outcome of a limit check. ``None`` ceilings mean unlimited."""
    allowed: bool
    exceeded: Optional[LimitKind] = None
    reason: Optional[str] = None
    single_limit: Optional[Decimal] = None
    daily_limit: Optional[Decimal] = None
    monthly_limit: Optional[Decimal] = None
    daily_used: Decimal = Decimal("0")
    monthly_used: Decimal = Decimal("0")


# --- Strong customer authentication --------------------------------------


class ScaConfigEntry(BaseModel):
    """One keyed SCA configuration row."""
    key: str
    value: Any
    description: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)


class ScaConfigUpdate(BaseModel):
    value: Any


class ScaConfig(BaseModel):
    """Typed view assembled from the keyed SCA rows."""
    amount_threshold: Decimal = Decimal("25")
    enabled: bool = True
    max_attempts: int = 3
    expiry_seconds: int = 300
    sensitive_actions: list[str] = Field(
        default_factory=lambda: [
            "change_password",
            "toggle_2fa",
            "add_payee",
            "large_payment",
        ]
    )


class ScaChallenge(BaseModel):
    """A one-time step-up code bound to a customer and an action."""
    challenge_id: str
    customer_id: str
    action: str
    code: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    max_attempts: int = 3
    verified: bool = False
    verified_at: Optional[datetime] = None
    consumed_at: Optional[datetime] = None
    expires_at: datetime
    created_at: datetime


class ScaChallengeRequest(BaseModel):
    customer_id: str
    action: str = "large_payment"
    metadata: dict[str, Any] = Field(default_factory=dict)


class ScaChallengeCreated(BaseModel):
    # The code itself is delivered out of band, never returned here
    challenge_id: str
    expires_at: datetime


class ScaVerifyRequest(BaseModel):
    code: str


class ScaVerifyResult(BaseModel):
    verified: bool
    error: Optional[str] = None
    attempts_remaining: Optional[int] = None


# --- Spending alerts ------------------------------------------------------


class SpendingAlertRule(BaseModel):
    """A customer-defined spending alert rule."""
    rule_id: str
    customer_id: str
    name: str
    alert_type: AlertType
    account_id: Optional[str] = None
    category: Optional[str] = None
    merchant_name: Optional[str] = None
    threshold_amount: Decimal
    is_active: bool = True
    # Informational only, never used to suppress repeat triggers
    last_triggered_at: Optional[datetime] = None
    trigger_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AlertRuleCreate(BaseModel):
    name: str
    alert_type: AlertType
    account_id: Optional[str] = None
    category: Optional[str] = None
    merchant_name: Optional[str] = None
    threshold_amount: Decimal


class AlertRuleUpdate(BaseModel):
    name: Optional[str] = None
    threshold_amount: Optional[Decimal] = None
    account_id: Optional[str] = None
    category: Optional[str] = None
    merchant_name: Optional[str] = None
    is_active: Optional[bool] = None


class AlertMatch(BaseModel):
    """Output of an individual alert rule check."""
    rule_id: str
    alert_type: AlertType
    current_value: Decimal
    reason: str


class AlertEvaluationResponse(BaseModel):
    triggered: list[AlertMatch]


# --- Ledger read/write shapes ---------------------------------------------


class Account(BaseModel):
    account_id: str
    customer_id: str
    name: str
    balance: Decimal
    available_balance: Decimal
    is_active: bool = True


class LedgerTransaction(BaseModel):
    """A posted ledger entry. Amounts are positive; direction says which way."""
    transaction_id: str
    account_id: str
    customer_id: str
    direction: Direction
    amount: Decimal
    category: Optional[str] = None
    counterparty_name: Optional[str] = None
    description: str = ""
    reference: Optional[str] = None
    status: str = "completed"
    transaction_date: datetime
    balance_after: Decimal


class LedgerResult(BaseModel):
    transaction_id: str
    new_balance: Decimal


# --- Gateway --------------------------------------------------------------


class MoneyMovementRequest(BaseModel):
    """A customer-initiated outbound payment to be policy-checked."""
    customer_id: str
    account_id: str
    amount: Decimal = Field(gt=0)
    payee_id: Optional[str] = None
    rail: str = "fps"
    action: str = "payment"
    description: Optional[str] = None
    reference: Optional[str] = None
    category: Optional[str] = None
    sca_challenge_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RejectionDetail(BaseModel):
    kind: str
    message: str
    hours_remaining: Optional[int] = None


class PolicyDecision(BaseModel):
    """Terminal (or step-up) result of a money-movement request."""
    request_id: str
    status: DecisionStatus
    state_history: list[GatewayState]
    rejection: Optional[RejectionDetail] = None
    transaction_id: Optional[str] = None
    new_balance: Optional[Decimal] = None
    triggered_alerts: list[str] = Field(default_factory=list)
    config_revision: int = 0


# --- Admin overrides and audit --------------------------------------------


class PolicyOverrideEvent(BaseModel):
    """Immutable audit record of an override or configuration change."""
    model_config = ConfigDict(frozen=True)

    event_id: str
    actor_id: str
    actor_role: ActorRole
    action: str
    target_table: str
    target_id: str
    before: dict[str, Any] = Field(default_factory=dict)
    after: dict[str, Any] = Field(default_factory=dict)
    justification: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class WaiverRequest(BaseModel):
    reason: str
    rail: Optional[str] = None


class ManualCreditRequest(BaseModel):
    account_id: str
    amount: Decimal
    reason: CreditReason
    note: str
    reference: Optional[str] = None


class PolicySeed(BaseModel):
    """Startup policy data, loaded from JSON or built from defaults."""
    cooling: list[CoolingPolicyConfig] = Field(default_factory=list)
    limits: list[TransactionLimitTier] = Field(default_factory=list)
    sca: list[ScaConfigEntry] = Field(default_factory=list)
