"""Spending alert rule endpoints."""

from typing import List

from fastapi import APIRouter, Request, Response

from risk_controls.models import (
    AlertEvaluationResponse,
    AlertRuleCreate,
    AlertRuleUpdate,
    SpendingAlertRule,
)
from risk_controls.policy.alert_evaluator import SpendingAlertEvaluator
from risk_controls.policy.alert_rules import AlertRuleService

router = APIRouter(prefix="/api/customers/{customer_id}/alerts")


def _get_rules(request: Request) -> AlertRuleService:
    return request.app.state.alert_rules


def _get_evaluator(request: Request) -> SpendingAlertEvaluator:
    return request.app.state.alerts


@router.get("", response_model=List[SpendingAlertRule])
async def list_alert_rules(customer_id: str, request: Request) -> List[SpendingAlertRule]:
    return await _get_rules(request).list_rules(customer_id)


@router.post("", response_model=SpendingAlertRule, status_code=201)
async def create_alert_rule(
    customer_id: str,
    rule: AlertRuleCreate,
    request: Request,
) -> SpendingAlertRule:
    return await _get_rules(request).create(customer_id, rule)


@router.patch("/{rule_id}", response_model=SpendingAlertRule)
async def update_alert_rule(
    customer_id: str,
    rule_id: str,
    changes: AlertRuleUpdate,
    request: Request,
) -> SpendingAlertRule:
    """Partially update a rule. Sending null for a scope field removes it."""
    return await _get_rules(request).update(customer_id, rule_id, changes)


@router.delete("/{rule_id}", status_code=204)
async def delete_alert_rule(customer_id: str, rule_id: str, request: Request) -> Response:
    await _get_rules(request).delete(customer_id, rule_id)
    return Response(status_code=204)


@router.post("/evaluate", response_model=AlertEvaluationResponse)
async def evaluate_alerts(customer_id: str, request: Request) -> AlertEvaluationResponse:
    """Evaluate the customer's active rules against current activity.

    Safe to call repeatedly; each call that matches bumps trigger counters.
    """
    matches = await _get_evaluator(request).run(customer_id)
    return AlertEvaluationResponse(triggered=matches)
