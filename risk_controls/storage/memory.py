"""In-memory storage for policy configuration, payees, alert rules and audit.

All data lives in memory and is lost on restart. Reads hand out copies so
a caller holding a record cannot change stored state without going back
through a write method.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import structlog

from risk_controls.errors import NotFoundError
from risk_controls.models import (
    CoolingPolicyConfig,
    Payee,
    PolicyOverrideEvent,
    PolicySeed,
    ScaChallenge,
    ScaConfig,
    ScaConfigEntry,
    SpendingAlertRule,
    TransactionLimitTier,
)

logger = structlog.get_logger()


def _normalize_key(value: str) -> str:
    """Normalize a rail or KYC level to a consistent dict key."""
    return value.strip().lower()


class MemoryConfigStore:
    """Cooling configs, limit tiers and SCA rows, keyed like the hosted tables.

    ``revision`` increases on every write so a decision can record which
    version of the policy it was made against.
    """

    def __init__(self, seed: Optional[PolicySeed] = None) -> None:
        self._cooling: Dict[str, CoolingPolicyConfig] = {}
        self._limits: Dict[str, TransactionLimitTier] = {}
        self._sca: Dict[str, ScaConfigEntry] = {}
        self.revision = 0
        if seed is not None:
            for config in seed.cooling:
                self._cooling[_normalize_key(config.rail)] = config
            for tier in seed.limits:
                self._limits[_normalize_key(tier.kyc_level)] = tier
            for entry in seed.sca:
                self._sca[entry.key] = entry

    def _bump(self) -> None:
        self.revision += 1

    async def get_revision(self) -> int:
        return self.revision

    # Cooling ------------------------------------------------------------

    async def get_cooling_config(self, rail: str) -> CoolingPolicyConfig:
        config = self._cooling.get(_normalize_key(rail))
        if config is None:
            raise NotFoundError(f"No cooling period configured for rail '{rail}'", rail=rail)
        return config.model_copy()

    async def list_cooling_configs(self) -> List[CoolingPolicyConfig]:
        return [self._cooling[k].model_copy() for k in sorted(self._cooling)]

    async def put_cooling_config(self, config: CoolingPolicyConfig) -> None:
        self._cooling[_normalize_key(config.rail)] = config.model_copy()
        self._bump()

    # Limits -------------------------------------------------------------

    async def get_limit_tier(self, kyc_level: str) -> TransactionLimitTier:
        tier = self._limits.get(_normalize_key(kyc_level))
        if tier is None:
            raise NotFoundError(
                f"No transaction limit tier for KYC level '{kyc_level}'",
                kyc_level=kyc_level,
            )
        return tier.model_copy()

    async def list_limit_tiers(self) -> List[TransactionLimitTier]:
        return [self._limits[k].model_copy() for k in sorted(self._limits)]

    async def put_limit_tier(self, tier: TransactionLimitTier) -> None:
        self._limits[_normalize_key(tier.kyc_level)] = tier.model_copy()
        self._bump()

    # SCA ----------------------------------------------------------------

    async def get_sca_entry(self, key: str) -> ScaConfigEntry:
        entry = self._sca.get(key)
        if entry is None:
            raise NotFoundError(f"Unknown SCA setting '{key}'", key=key)
        return entry.model_copy()

    async def list_sca_entries(self) -> List[ScaConfigEntry]:
        return [self._sca[k].model_copy() for k in sorted(self._sca)]

    async def put_sca_entry(self, entry: ScaConfigEntry) -> None:
        self._sca[entry.key] = entry.model_copy()
        self._bump()

    async def delete_sca_entry(self, key: str) -> None:
        if self._sca.pop(key, None) is None:
            raise NotFoundError(f"Unknown SCA setting '{key}'", key=key)
        self._bump()

    async def get_sca_config(self) -> ScaConfig:
        """Assemble the typed SCA view, falling back to defaults per key."""
        config = ScaConfig()
        for key, entry in self._sca.items():
            value = entry.value
            try:
                if key == "amount_threshold":
                    config.amount_threshold = Decimal(str(value))
                elif key == "enabled":
                    config.enabled = value is not False
                elif key == "max_attempts":
                    config.max_attempts = int(value)
                elif key == "expiry_seconds":
                    config.expiry_seconds = int(value)
                elif key == "sensitive_actions":
                    config.sensitive_actions = list(value or [])
            except (InvalidOperation, TypeError, ValueError):
                logger.warning("sca_config_value_ignored", key=key, value=value)
        return config

    async def get_sca_threshold(self) -> Decimal:
        return (await self.get_sca_config()).amount_threshold


class MemoryStore:
    """Payees, spending alert rules, KYC levels and SCA challenges."""

    def __init__(self, default_kyc_level: str = "basic") -> None:
        self._payees: Dict[str, Payee] = {}
        self._alert_rules: Dict[str, SpendingAlertRule] = {}
        self._kyc_levels: Dict[str, str] = {}
        self._challenges: Dict[str, ScaChallenge] = {}
        self.default_kyc_level = default_kyc_level

    # Payees -------------------------------------------------------------

    async def add_payee(self, payee: Payee) -> None:
        self._payees[payee.payee_id] = payee.model_copy()

    async def get_payee(self, payee_id: str) -> Payee:
        payee = self._payees.get(payee_id)
        if payee is None:
            raise NotFoundError("Payee not found", payee_id=payee_id)
        return payee.model_copy()

    async def list_payees(self, customer_id: str) -> List[Payee]:
        """Return a customer's payees, newest first."""
        payees = [p for p in self._payees.values() if p.customer_id == customer_id]
        payees.sort(key=lambda p: p.created_at, reverse=True)
        return [p.model_copy() for p in payees]

    async def set_first_used(
        self, payee_id: str, when: Optional[datetime], only_if_unset: bool = True
    ) -> bool:
        """Set (or, with ``when=None``, clear) first use. Returns True if changed."""
        payee = self._payees.get(payee_id)
        if payee is None:
            raise NotFoundError("Payee not found", payee_id=payee_id)
        if only_if_unset and payee.first_used_at is not None:
            return False
        payee.first_used_at = when
        return True

    # KYC ----------------------------------------------------------------

    async def get_kyc_level(self, customer_id: str) -> str:
        return self._kyc_levels.get(customer_id, self.default_kyc_level)

    async def set_kyc_level(self, customer_id: str, kyc_level: str) -> None:
        self._kyc_levels[customer_id] = kyc_level

    # Alert rules --------------------------------------------------------

    async def save_alert_rule(self, rule: SpendingAlertRule) -> None:
        self._alert_rules[rule.rule_id] = rule.model_copy()

    async def get_alert_rule(self, rule_id: str) -> SpendingAlertRule:
        rule = self._alert_rules.get(rule_id)
        if rule is None:
            raise NotFoundError("Spending alert not found", rule_id=rule_id)
        return rule.model_copy()

    async def list_alert_rules(
        self, customer_id: str, active_only: bool = False
    ) -> List[SpendingAlertRule]:
        rules = [
            r
            for r in self._alert_rules.values()
            if r.customer_id == customer_id and (r.is_active or not active_only)
        ]
        rules.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy() for r in rules]

    async def delete_alert_rule(self, rule_id: str) -> None:
        if self._alert_rules.pop(rule_id, None) is None:
            raise NotFoundError("Spending alert not found", rule_id=rule_id)

    async def record_alert_trigger(self, rule_id: str, when: datetime) -> None:
        """Bump the informational trigger counters of a rule."""
        rule = self._alert_rules.get(rule_id)
        if rule is None:
            raise NotFoundError("Spending alert not found", rule_id=rule_id)
        rule.last_triggered_at = when
        rule.trigger_count += 1

    # SCA challenges -----------------------------------------------------

    async def save_challenge(self, challenge: ScaChallenge) -> None:
        self._challenges[challenge.challenge_id] = challenge.model_copy()

    async def get_challenge(self, challenge_id: str) -> ScaChallenge:
        challenge = self._challenges.get(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge not found", challenge_id=challenge_id)
        return challenge.model_copy()


class MemoryAuditTrail:
    """Append-only, chronological log of overrides and configuration edits."""

    def __init__(self) -> None:
        self._events: List[PolicyOverrideEvent] = []

    async def record(self, event: PolicyOverrideEvent) -> None:
        """Append an event to the audit log."""
        self._events.append(event)

    def get_events(
        self,
        action: Optional[str] = None,
        target_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[PolicyOverrideEvent]:
        """Return audit events, optionally filtered by action, target and time range."""
        # Naive bounds are taken as UTC, matching how events are stamped
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        if until is not None and until.tzinfo is None:
            until = until.replace(tzinfo=timezone.utc)
        results: List[PolicyOverrideEvent] = []
        for event in self._events:
            if action is not None and event.action != action:
                continue
            if target_id is not None and event.target_id != target_id:
                continue
            if since is not None and event.timestamp < since:
                continue
            if until is not None and event.timestamp > until:
                continue
            results.append(event)
        return results
