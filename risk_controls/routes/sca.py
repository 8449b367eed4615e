"""Strong customer authentication challenge endpoints."""

from decimal import Decimal
from typing import Dict, Optional

from fastapi import APIRouter, Query, Request

from risk_controls.models import (
    ScaChallengeCreated,
    ScaChallengeRequest,
    ScaVerifyRequest,
    ScaVerifyResult,
)
from risk_controls.policy.sca import ScaPolicy

router = APIRouter(prefix="/api/sca")


def _get_sca(request: Request) -> ScaPolicy:
    return request.app.state.sca


@router.get("/required")
async def check_sca_required(
    request: Request,
    amount: Optional[Decimal] = Query(default=None),
    action: Optional[str] = Query(default=None),
) -> Dict[str, bool]:
    """Whether a payment of ``amount`` or the given action needs step-up."""
    return {"required": await _get_sca(request).requires_sca(amount, action)}


@router.post("/challenges", response_model=ScaChallengeCreated, status_code=201)
async def create_challenge(
    body: ScaChallengeRequest,
    request: Request,
) -> ScaChallengeCreated:
    """Issue a challenge. The code goes to the customer's device, not the response."""
    challenge = await _get_sca(request).create_challenge(
        body.customer_id, body.action, body.metadata
    )
    return ScaChallengeCreated(
        challenge_id=challenge.challenge_id, expires_at=challenge.expires_at
    )


@router.post("/challenges/{challenge_id}/verify", response_model=ScaVerifyResult)
async def verify_challenge(
    challenge_id: str,
    body: ScaVerifyRequest,
    request: Request,
) -> ScaVerifyResult:
    return await _get_sca(request).verify(challenge_id, body.code)
