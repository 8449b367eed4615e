"""Collaborator contracts the policy components are written against.

The engine never owns these systems. The in-memory classes in this package
implement them for the service and the test suite; a deployment swaps in
adapters for the hosted data store and the posting engine.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Protocol

from risk_controls.models import (
    Account,
    CoolingPolicyConfig,
    Direction,
    LedgerResult,
    LedgerTransaction,
    PolicyOverrideEvent,
    ScaConfig,
    ScaConfigEntry,
    TransactionLimitTier,
)


class ConfigStore(Protocol):
    async def get_cooling_config(self, rail: str) -> CoolingPolicyConfig: ...

    async def list_cooling_configs(self) -> list[CoolingPolicyConfig]: ...

    async def put_cooling_config(self, config: CoolingPolicyConfig) -> None: ...

    async def get_limit_tier(self, kyc_level: str) -> TransactionLimitTier: ...

    async def list_limit_tiers(self) -> list[TransactionLimitTier]: ...

    async def put_limit_tier(self, tier: TransactionLimitTier) -> None: ...

    async def get_sca_entry(self, key: str) -> ScaConfigEntry: ...

    async def list_sca_entries(self) -> list[ScaConfigEntry]: ...

    async def put_sca_entry(self, entry: ScaConfigEntry) -> None: ...

    async def delete_sca_entry(self, key: str) -> None: ...

    async def get_sca_config(self) -> ScaConfig: ...

    async def get_sca_threshold(self) -> Decimal: ...

    async def get_revision(self) -> int: ...


class LedgerGateway(Protocol):
    async def atomic_move(
        self,
        account_id: str,
        amount: Decimal,
        description: str,
        metadata: Optional[dict[str, Any]] = None,
        direction: Direction = "debit",
    ) -> LedgerResult: ...

    async def get_account(self, account_id: str) -> Account: ...

    async def list_accounts(self, customer_id: str) -> list[Account]: ...

    async def debit_totals(
        self, customer_id: str, now: datetime
    ) -> tuple[Decimal, Decimal]: ...

    async def transactions_since(
        self, customer_id: str, since: datetime
    ) -> list[LedgerTransaction]: ...


class AuditTrail(Protocol):
    async def record(self, event: PolicyOverrideEvent) -> None: ...
