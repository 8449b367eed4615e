"""Audit trail endpoint for compliance review."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from risk_controls.models import Actor, PolicyOverrideEvent
from risk_controls.routes.admin import get_actor
from risk_controls.storage.memory import MemoryAuditTrail

router = APIRouter(prefix="/api")


def _get_audit(request: Request) -> MemoryAuditTrail:
    """Retrieve the audit trail from application state."""
    return request.app.state.audit


@router.get("/audit", response_model=List[PolicyOverrideEvent])
async def get_audit_log(
    request: Request,
    action: Optional[str] = Query(default=None),
    target_id: Optional[str] = Query(default=None),
    from_date: Optional[datetime] = Query(default=None),
    to_date: Optional[datetime] = Query(default=None),
    actor: Actor = Depends(get_actor),
) -> List[PolicyOverrideEvent]:
    """Retrieve override events in the order they were recorded.

    Filters:
      - action: e.g. waive_cooling_period, transaction_limit_updated
      - target_id: the payee, KYC level, rail, SCA key or account changed
      - from_date: events with timestamp >= this value
      - to_date: events with timestamp <= this value

    Dates without an offset are read as UTC.
    """
    return _get_audit(request).get_events(
        action=action,
        target_id=target_id,
        since=from_date,
        until=to_date,
    )
