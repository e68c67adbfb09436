"""Caller identity as resolved by the external authorization service."""

from dataclasses import dataclass, field

from leadbroker.models.enums import Role

SYSTEM_ACTOR_ID = "system"


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation.

    ``provider_id`` is the caller's provider profile, when they have one. The
    core trusts this resolution and only checks relationships to the job.
    """

    user_id: str
    roles: frozenset[Role] = field(default_factory=frozenset)
    provider_id: str | None = None

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    @property
    def is_arbitrator(self) -> bool:
        return Role.ARBITRATOR in self.roles

    @property
    def is_system(self) -> bool:
        return Role.SYSTEM in self.roles

    @classmethod
    def from_claims(cls, claims: dict) -> "Actor":
        roles = frozenset(Role(r) for r in claims.get("roles", []) if r in Role._value2member_map_)
        return cls(
            user_id=claims.get("sub", ""),
            roles=roles,
            provider_id=claims.get("provider_id") or None,
        )


SYSTEM_ACTOR = Actor(user_id=SYSTEM_ACTOR_ID, roles=frozenset({Role.SYSTEM}))
