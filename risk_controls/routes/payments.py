"""Money-movement endpoint. Every customer payment goes through the gateway."""

from fastapi import APIRouter, Request

from risk_controls.models import MoneyMovementRequest, PolicyDecision
from risk_controls.policy.gateway import PolicyGateway

router = APIRouter(prefix="/api")


def _get_gateway(request: Request) -> PolicyGateway:
    """Retrieve the policy gateway from application state."""
    return request.app.state.gateway


@router.post("/payments", response_model=PolicyDecision)
async def submit_payment(
    payment: MoneyMovementRequest,
    request: Request,
) -> PolicyDecision:
    """Run a payment through cooling, limit and SCA checks and post it.

    A policy rejection is a normal outcome and comes back with status 200;
    the decision's ``status`` and ``rejection`` say what happened.
    """
    return await _get_gateway(request).submit(payment)
