"""Role capabilities for admin override operations.

Callers arrive already authenticated and resolved to a role. Each override
checks the capability it needs exactly once, at its entry point.
"""

from typing import Literal

from risk_controls.errors import AuthorizationError
from risk_controls.models import Actor

Capability = Literal[
    "waive_cooling_period",
    "manual_credit",
    "update_limit_tier",
    "update_cooling_config",
    "update_sca_config",
]

ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    "admin": frozenset({"waive_cooling_period", "manual_credit"}),
    "super_admin": frozenset(
        {
            "waive_cooling_period",
            "manual_credit",
            "update_limit_tier",
            "update_cooling_config",
            "update_sca_config",
        }
    ),
}


def require_capability(actor: Actor, capability: Capability) -> None:
    if capability not in ROLE_CAPABILITIES.get(actor.role, frozenset()):
        raise AuthorizationError(
            f"Role '{actor.role}' may not {capability.replace('_', ' ')}",
            actor_id=actor.actor_id,
            capability=capability,
        )
