"""Exception taxonomy for the risk and controls engine.

Every error raised by a policy component derives from RiskControlsError and
carries a stable ``code`` that the API layer maps to an HTTP status. Policy
rejections additionally carry a ``kind`` so callers can show a specific
message (cooling window, which limit, step-up required) instead of a
generic failure.
"""

from typing import Any, Literal, Optional

RejectionKind = Literal[
    "cooling_active",
    "limit_single",
    "limit_daily",
    "limit_monthly",
    "sca_required",
]


class RiskControlsError(Exception):
    """Base class for all engine errors."""

    code = "risk_controls_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(RiskControlsError):
    """Malformed input to an operation. Raised before any state change."""

    code = "validation_error"


class ConfigInconsistency(ValidationError):
    """A limit tier whose ceilings are out of order (single > daily > monthly)."""

    code = "config_inconsistency"


class NotFoundError(RiskControlsError):
    """A referenced payee, limit tier, cooling config or record does not exist."""

    code = "not_found"


class AuthorizationError(RiskControlsError):
    """The actor's role lacks the capability an override requires."""

    code = "forbidden"


class PolicyRejection(RiskControlsError):
    """A well-formed request that failed a cooling, limit or SCA check."""

    code = "policy_rejection"

    def __init__(
        self,
        kind: RejectionKind,
        message: str,
        hours_remaining: Optional[int] = None,
        **details: Any,
    ) -> None:
        super().__init__(message, **details)
        self.kind = kind
        self.hours_remaining = hours_remaining


class LedgerError(RiskControlsError):
    """The external atomic move failed.

    ``message`` is safe to show to the customer; storage detail belongs in
    ``details`` and is only ever logged.
    """

    code = "ledger_error"
