"""Payee endpoints and cooling-period status."""

from typing import List, Optional

from fastapi import APIRouter, Query, Request

from risk_controls.models import CoolingStatus, Payee, PayeeCoolingView, PayeeCreate
from risk_controls.policy.cooling import CoolingPeriodManager

router = APIRouter(prefix="/api")


def _get_cooling(request: Request) -> CoolingPeriodManager:
    return request.app.state.cooling


@router.post("/payees", response_model=Payee, status_code=201)
async def add_payee(payee: PayeeCreate, request: Request) -> Payee:
    """Save a new payee. Its cooling period starts immediately."""
    return await _get_cooling(request).add_payee(payee)


@router.get("/payees/{payee_id}/cooling", response_model=CoolingStatus)
async def get_cooling_status(
    payee_id: str,
    request: Request,
    rail: Optional[str] = Query(default=None),
) -> CoolingStatus:
    return await _get_cooling(request).status(payee_id, rail)


@router.get("/customers/{customer_id}/payees", response_model=List[PayeeCoolingView])
async def list_payees(
    customer_id: str,
    request: Request,
    rail: Optional[str] = Query(default=None),
) -> List[PayeeCoolingView]:
    """A customer's payees, newest first, each with its cooling status."""
    return await _get_cooling(request).list_for_customer(customer_id, rail)
