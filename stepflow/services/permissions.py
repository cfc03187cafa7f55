"""
Permission evaluation for workflow actions.

Resolves an actor to an RBAC role and checks the role's permission set
from the security policies configuration.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from stepflow.domain import SYSTEM_ACTOR, PermissionDeniedError

logger = logging.getLogger(__name__)

WILDCARD_PERMISSION = "*"
WORKFLOW_WILDCARD_PERMISSION = "workflow:*"

RoleResolver = Callable[[str], Optional[str]]


class PermissionEvaluator:
    """
    Decides whether an actor may perform a workflow action.

    Rules:
    - The `system` actor is always allowed
    - Any other actor is resolved to a role; the role's permissions must
      contain `*`, `workflow:*` or `workflow:<action>`

    Role resolution order: the optional `role_resolver`, the explicit
    `actor_roles` mapping, the actor name itself when it is a known role,
    and finally `default_role`.
    """

    def __init__(
        self,
        roles: Optional[Mapping[str, List[str]]] = None,
        actor_roles: Optional[Mapping[str, str]] = None,
        default_role: Optional[str] = "staff",
        role_resolver: Optional[RoleResolver] = None,
    ):
        self._roles: Dict[str, List[str]] = {name: list(perms) for name, perms in (roles or {}).items()}
        self._actor_roles: Dict[str, str] = dict(actor_roles or {})
        self._default_role = default_role
        self._role_resolver = role_resolver

    @classmethod
    def from_security_policies(
        cls,
        policies: Mapping[str, Any],
        default_role: Optional[str] = "staff",
        role_resolver: Optional[RoleResolver] = None,
    ) -> "PermissionEvaluator":
        """Build an evaluator from a `SecurityPolicies` mapping."""
        roles = (policies.get("rbac") or {}).get("roles") or {}
        return cls(
            roles={name: role.get("permissions", []) for name, role in roles.items()},
            actor_roles=policies.get("actorRoles") or {},
            default_role=default_role,
            role_resolver=role_resolver,
        )

    def resolve_role(self, actor: str) -> Optional[str]:
        """Resolve the role an actor acts under."""
        if self._role_resolver is not None:
            role = self._role_resolver(actor)
            if role:
                return role
        if actor in self._actor_roles:
            return self._actor_roles[actor]
        if actor in self._roles:
            return actor
        return self._default_role

    def get_permissions(self, role: Optional[str]) -> List[str]:
        if role is None:
            return []
        return list(self._roles.get(role, []))

    def is_allowed(self, actor: str, action: str = "transition") -> bool:
        """Check if an actor may perform `workflow:<action>`."""
        if actor == SYSTEM_ACTOR:
            return True

        role = self.resolve_role(actor)
        permissions = self.get_permissions(role)
        allowed = (
            WILDCARD_PERMISSION in permissions
            or WORKFLOW_WILDCARD_PERMISSION in permissions
            or f"workflow:{action}" in permissions
        )
        if not allowed:
            logger.debug(f"Actor {actor} (role {role}) lacks workflow:{action}")
        return allowed

    def require(self, actor: str, action: str = "transition") -> None:
        """Raise PermissionDeniedError unless the actor is allowed."""
        if not self.is_allowed(actor, action):
            raise PermissionDeniedError(actor, action, role=self.resolve_role(actor))

    @property
    def roles(self) -> List[str]:
        return sorted(self._roles)
