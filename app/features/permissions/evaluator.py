"""
Runtime access decisions.

Given a principal, an object, a level and a concrete resource, resolve the
scope the principal's roles grant for (object, level) and check whether the
resource falls inside it.
"""
import enum
from collections.abc import Iterable
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.assignments import RolePermissionAssignment
from app.features.permissions.catalog import SCOPE_BREADTH, PermissionLevel, PermissionScope
from app.features.teams.service import SqlTeamMembership, TeamMembership
from app.utils import get_logger


log = get_logger(__name__)


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class Principal:
    id: str
    role_ids: tuple[str, ...]

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(id=user.id, role_ids=(user.role_id,) if user.role_id else ())


@dataclass(frozen=True)
class Resource:
    id: str | None
    owner_id: str | None


def broadest_scope(scopes: Iterable[PermissionScope]) -> PermissionScope | None:
    """Widest of own/team/all among ``scopes``; UNASSIGNED is ignored."""
    ranked = [scope for scope in scopes if scope in SCOPE_BREADTH]
    if not ranked:
        return None
    return max(ranked, key=SCOPE_BREADTH.__getitem__)


class AccessDecisionEvaluator:
    """
    Read-only decision function. Grants come from role assignments, team
    membership from ``team_membership`` (the team_members table unless one is
    passed in), and ownership from the Resource handed to ``decide``.
    """

    def __init__(self, db: AsyncSession, team_membership: TeamMembership | None = None):
        self.assignments = RolePermissionAssignment(db)
        self.team_membership = team_membership or SqlTeamMembership(db)

    async def granted_scopes(
        self, principal: Principal, object_name: str, level: PermissionLevel
    ) -> set[PermissionScope]:
        level = PermissionLevel(level)
        scopes: set[PermissionScope] = set()
        for permission in await self.assignments.for_roles(principal.role_ids):
            try:
                atom = permission.atom
            except ValueError:
                continue
            if atom.object == object_name and atom.level == level:
                scopes.add(atom.scope)
        return scopes

    async def shares_team(self, principal_id: str, owner_id: str) -> bool:
        principal_teams = set(await self.team_membership.team_ids_for(principal_id))
        if not principal_teams:
            return False
        owner_teams = set(await self.team_membership.team_ids_for(owner_id))
        return bool(principal_teams & owner_teams)

    async def decide(
        self,
        principal: Principal,
        object_name: str,
        level: PermissionLevel,
        resource: Resource,
    ) -> Decision:
        scopes = await self.granted_scopes(principal, object_name, level)
        decision = await self._decide_for_scopes(principal, scopes, resource)
        log.debug(
            "Access %s: user=%s %s/%s resource=%s owner=%s scopes=%s",
            decision.value, principal.id, object_name, PermissionLevel(level).value,
            resource.id, resource.owner_id, sorted(scope.value for scope in scopes),
        )
        return decision

    async def _decide_for_scopes(
        self, principal: Principal, scopes: set[PermissionScope], resource: Resource
    ) -> Decision:
        if not scopes:
            return Decision.DENY

        if PermissionScope.UNASSIGNED in scopes and resource.owner_id is None:
            return Decision.ALLOW

        scope = broadest_scope(scopes)
        if scope == PermissionScope.ALL:
            return Decision.ALLOW
        if resource.owner_id is None:
            return Decision.DENY
        if scope == PermissionScope.OWN:
            return Decision.ALLOW if resource.owner_id == principal.id else Decision.DENY
        if scope == PermissionScope.TEAM:
            if await self.shares_team(principal.id, resource.owner_id):
                return Decision.ALLOW
        return Decision.DENY
