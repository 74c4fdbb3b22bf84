"""Actor capabilities checked before privileged operations"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet

from lending_gateway.domain.exceptions import AuthorizationError


class Capability(str, Enum):
    OVERRIDE_DECISION = "override_decision"
    RECALCULATE = "recalculate"
    VIEW_DECISIONS = "view_decisions"
    VIEW_CONFIG = "view_config"


ROLE_CAPABILITIES = {
    "admin": frozenset(Capability),
    "lender": frozenset(
        {Capability.OVERRIDE_DECISION, Capability.RECALCULATE, Capability.VIEW_DECISIONS}
    ),
    "underwriter": frozenset({Capability.VIEW_DECISIONS, Capability.VIEW_CONFIG}),
    "analyst": frozenset({Capability.VIEW_DECISIONS}),
    "viewer": frozenset(),
}


@dataclass(frozen=True)
class Actor:
    actor_id: str
    capabilities: FrozenSet[Capability] = frozenset()

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


SYSTEM_ACTOR = Actor(actor_id="system", capabilities=frozenset(Capability))


def actor_for_role(actor_id: str, role: str) -> Actor:
    """Unknown roles get no capabilities"""
    return Actor(actor_id=actor_id, capabilities=ROLE_CAPABILITIES.get(role.strip().lower(), frozenset()))


def require_capability(actor: Actor, capability: Capability) -> None:
    if not actor.can(capability):
        raise AuthorizationError(f"Actor {actor.actor_id} lacks the {capability.value} capability")
