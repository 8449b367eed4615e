"""Strong customer authentication step-up.

A payment at or above the configured amount, or an action listed as
sensitive, needs a verified one-time challenge before the gateway will post
it. A verified challenge authorises one posting only and is consumed when
the ledger accepts the movement.
"""

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

import structlog

from risk_controls.errors import NotFoundError, PolicyRejection
from risk_controls.models import (
    ScaChallenge,
    ScaConfig,
    ScaVerifyResult,
)
from risk_controls.storage.interfaces import ConfigStore
from risk_controls.storage.memory import MemoryStore

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sca_required(config: ScaConfig, amount: Optional[Decimal], action: Optional[str]) -> bool:
    """Whether step-up applies to this amount/action under ``config``."""
    if not config.enabled:
        return False
    if action and action in config.sensitive_actions:
        return True
    return amount is not None and amount >= config.amount_threshold


class ScaPolicy:
    """Decides on step-up and manages the challenges that prove it."""

    def __init__(
        self,
        store: MemoryStore,
        config_store: ConfigStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.config_store = config_store
        self.clock = clock

    async def requires_sca(
        self, amount: Optional[Decimal] = None, action: Optional[str] = None
    ) -> bool:
        config = await self.config_store.get_sca_config()
        return sca_required(config, amount, action)

    async def create_challenge(
        self, customer_id: str, action: str, metadata: Optional[dict] = None
    ) -> ScaChallenge:
        """Issue a six-digit code. Delivery to the customer happens elsewhere."""
        config = await self.config_store.get_sca_config()
        now = self.clock()
        challenge = ScaChallenge(
            challenge_id=str(uuid.uuid4()),
            customer_id=customer_id,
            action=action,
            code=f"{secrets.randbelow(900000) + 100000}",
            metadata=metadata or {},
            max_attempts=config.max_attempts,
            expires_at=now + timedelta(seconds=config.expiry_seconds),
            created_at=now,
        )
        await self.store.save_challenge(challenge)
        logger.info(
            "sca_challenge_created",
            challenge_id=challenge.challenge_id,
            customer_id=customer_id,
            action=action,
        )
        return challenge

    async def verify(self, challenge_id: str, code: str) -> ScaVerifyResult:
        """Check a code, counting the attempt against the challenge."""
        try:
            challenge = await self.store.get_challenge(challenge_id)
        except NotFoundError:
            return ScaVerifyResult(verified=False, error="Challenge not found")

        if challenge.verified:
            return ScaVerifyResult(verified=True)

        if challenge.expires_at < self.clock():
            return ScaVerifyResult(
                verified=False,
                error="Challenge has expired. Please request a new code.",
            )

        if challenge.attempts >= challenge.max_attempts:
            return ScaVerifyResult(
                verified=False,
                error="Too many attempts. Please request a new code.",
            )

        challenge.attempts += 1
        if not secrets.compare_digest(challenge.code, code):
            await self.store.save_challenge(challenge)
            remaining = challenge.max_attempts - challenge.attempts
            plural = "" if remaining == 1 else "s"
            logger.info("sca_challenge_failed", challenge_id=challenge_id, remaining=remaining)
            return ScaVerifyResult(
                verified=False,
                error=f"Incorrect code. {remaining} attempt{plural} remaining.",
                attempts_remaining=remaining,
            )

        challenge.verified = True
        challenge.verified_at = self.clock()
        await self.store.save_challenge(challenge)
        logger.info("sca_challenge_verified", challenge_id=challenge_id)
        return ScaVerifyResult(verified=True)

    async def is_verified(self, challenge_id: str, customer_id: str) -> bool:
        """True for a verified, unexpired, unconsumed challenge of this customer."""
        try:
            challenge = await self.store.get_challenge(challenge_id)
        except NotFoundError:
            return False
        if challenge.customer_id != customer_id:
            return False
        if challenge.consumed_at is not None:
            return False
        if challenge.expires_at < self.clock():
            return False
        return challenge.verified

    async def consume(self, challenge_id: str) -> None:
        challenge = await self.store.get_challenge(challenge_id)
        challenge.consumed_at = self.clock()
        await self.store.save_challenge(challenge)

    async def ensure_step_up(
        self,
        customer_id: str,
        amount: Decimal,
        action: Optional[str],
        challenge_id: Optional[str],
        config: Optional[ScaConfig] = None,
    ) -> bool:
        """Raise ``sca_required`` unless step-up is unnecessary or proven.

        Returns True when a challenge was needed and accepted, so the caller
        knows to consume it after posting.
        """
        if config is None:
            config = await self.config_store.get_sca_config()
        if not sca_required(config, amount, action):
            return False
        if challenge_id and await self.is_verified(challenge_id, customer_id):
            return True
        raise PolicyRejection(
            "sca_required",
            "Please confirm this payment with the code we send to your registered device.",
            amount_threshold=str(config.amount_threshold),
        )
