"""Admin endpoints: policy configuration, cooling waivers and manual credits.

Callers are authenticated upstream; the resolved identity arrives in the
``X-Actor-Id`` and ``X-Actor-Role`` headers. Which role may do what is
decided by the override service, not here.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Request

from risk_controls.errors import AuthorizationError
from risk_controls.models import (
    Actor,
    CoolingConfigUpdate,
    CoolingPolicyConfig,
    LedgerResult,
    LimitTierUpdate,
    ManualCreditRequest,
    Payee,
    ScaConfigEntry,
    ScaConfigUpdate,
    TransactionLimitTier,
    WaiverRequest,
)
from risk_controls.policy.overrides import AdminOverrideService
from risk_controls.storage.interfaces import ConfigStore

router = APIRouter(prefix="/api/admin")

ADMIN_ROLES = ("admin", "super_admin")


def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    """Resolve the calling admin from request headers."""
    if not x_actor_id or x_actor_role not in ADMIN_ROLES:
        raise AuthorizationError("Admin access required")
    return Actor(actor_id=x_actor_id, role=x_actor_role)


def _get_overrides(request: Request) -> AdminOverrideService:
    return request.app.state.overrides


def _get_config_store(request: Request) -> ConfigStore:
    return request.app.state.config_store


# Limits -----------------------------------------------------------------


@router.get("/limits", response_model=List[TransactionLimitTier])
async def list_limit_tiers(
    request: Request, actor: Actor = Depends(get_actor)
) -> List[TransactionLimitTier]:
    return await _get_config_store(request).list_limit_tiers()


@router.put("/limits/{kyc_level}", response_model=TransactionLimitTier)
async def update_limit_tier(
    kyc_level: str,
    changes: LimitTierUpdate,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> TransactionLimitTier:
    return await _get_overrides(request).update_limit_tier(actor, kyc_level, changes)


# Cooling ----------------------------------------------------------------


@router.get("/cooling", response_model=List[CoolingPolicyConfig])
async def list_cooling_configs(
    request: Request, actor: Actor = Depends(get_actor)
) -> List[CoolingPolicyConfig]:
    return await _get_config_store(request).list_cooling_configs()


@router.put("/cooling/{rail}", response_model=CoolingPolicyConfig)
async def update_cooling_config(
    rail: str,
    changes: CoolingConfigUpdate,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> CoolingPolicyConfig:
    return await _get_overrides(request).update_cooling_config(actor, rail, changes)


@router.post("/payees/{payee_id}/waive", response_model=Payee)
async def waive_cooling_period(
    payee_id: str,
    body: WaiverRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> Payee:
    """Clear a payee's cooling period early. The reason lands in the audit trail."""
    return await _get_overrides(request).waive_cooling_period(
        actor, payee_id, body.reason, body.rail
    )


# SCA --------------------------------------------------------------------


@router.get("/sca", response_model=List[ScaConfigEntry])
async def list_sca_config(
    request: Request, actor: Actor = Depends(get_actor)
) -> List[ScaConfigEntry]:
    return await _get_config_store(request).list_sca_entries()


@router.put("/sca/{key}", response_model=ScaConfigEntry)
async def update_sca_config(
    key: str,
    body: ScaConfigUpdate,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> ScaConfigEntry:
    return await _get_overrides(request).update_sca_config(actor, key, body.value)


# Credits ----------------------------------------------------------------


@router.post("/credits", response_model=LedgerResult, status_code=201)
async def credit_account(
    body: ManualCreditRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> LedgerResult:
    return await _get_overrides(request).credit_customer_account(actor, body)
