"""Customer management of spending alert rules."""

import uuid
from datetime import datetime, timezone
from typing import Callable

import structlog

from risk_controls.errors import NotFoundError, ValidationError
from risk_controls.models import AlertRuleCreate, AlertRuleUpdate, SpendingAlertRule
from risk_controls.storage.memory import MemoryStore

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value):
    if value is None:
        return None
    value = value.strip()
    return value or None


class AlertRuleService:
    def __init__(self, store: MemoryStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self.store = store
        self.clock = clock

    async def create(self, customer_id: str, data: AlertRuleCreate) -> SpendingAlertRule:
        if not data.name.strip():
            raise ValidationError("Name is required")
        if data.threshold_amount <= 0:
            raise ValidationError("Threshold must be greater than zero")

        category = _clean(data.category)
        merchant_name = _clean(data.merchant_name)
        if data.alert_type == "category_monthly" and category is None:
            raise ValidationError("A category is required for a category cap alert")
        if data.alert_type == "merchant_payment" and merchant_name is None:
            raise ValidationError("A merchant name is required for a merchant alert")

        now = self.clock()
        rule = SpendingAlertRule(
            rule_id=str(uuid.uuid4()),
            customer_id=customer_id,
            name=data.name.strip(),
            alert_type=data.alert_type,
            account_id=data.account_id or None,
            category=category,
            merchant_name=merchant_name,
            threshold_amount=data.threshold_amount,
            created_at=now,
            updated_at=now,
        )
        await self.store.save_alert_rule(rule)
        logger.info(
            "spending_alert_created",
            rule_id=rule.rule_id,
            customer_id=customer_id,
            alert_type=rule.alert_type,
        )
        return rule

    async def update(
        self, customer_id: str, rule_id: str, data: AlertRuleUpdate
    ) -> SpendingAlertRule:
        rule = await self._owned(customer_id, rule_id)

        if data.name is not None:
            if not data.name.strip():
                raise ValidationError("Name is required")
            rule.name = data.name.strip()
        if data.threshold_amount is not None:
            if data.threshold_amount <= 0:
                raise ValidationError("Threshold must be greater than zero")
            rule.threshold_amount = data.threshold_amount

        # Explicit nulls unset the scoping fields
        fields = data.model_fields_set
        if "account_id" in fields:
            rule.account_id = data.account_id or None
        if "category" in fields:
            rule.category = _clean(data.category)
        if "merchant_name" in fields:
            rule.merchant_name = _clean(data.merchant_name)
        if data.is_active is not None:
            rule.is_active = data.is_active

        rule.updated_at = self.clock()
        await self.store.save_alert_rule(rule)
        return rule

    async def toggle(self, customer_id: str, rule_id: str, is_active: bool) -> SpendingAlertRule:
        return await self.update(customer_id, rule_id, AlertRuleUpdate(is_active=is_active))

    async def delete(self, customer_id: str, rule_id: str) -> None:
        await self._owned(customer_id, rule_id)
        await self.store.delete_alert_rule(rule_id)
        logger.info("spending_alert_deleted", rule_id=rule_id, customer_id=customer_id)

    async def list_rules(self, customer_id: str) -> list[SpendingAlertRule]:
        return await self.store.list_alert_rules(customer_id)

    async def _owned(self, customer_id: str, rule_id: str) -> SpendingAlertRule:
        rule = await self.store.get_alert_rule(rule_id)
        # Another customer's rule is reported as missing, not forbidden
        if rule.customer_id != customer_id:
            raise NotFoundError("Spending alert not found", rule_id=rule_id)
        return rule
