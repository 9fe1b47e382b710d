"""Caller identity and per-operation role checks.

Every core entry point receives an `Actor`. Party roles (BUYER / SELLER /
ADMIN) are derived against the entity being touched and compared with the
operation's allow-list; nothing the caller claims about its role is trusted.
"""

from dataclasses import dataclass, field

from src.esc_common.enums import ActorType, PartyRole, PlatformRole
from src.esc_common.errors import AuthorizationError

STAFF_ROLES: frozenset[PlatformRole] = frozenset(
    {PlatformRole.ADMIN, PlatformRole.SUPPORT, PlatformRole.COMPLIANCE}
)

SYSTEM_ACTOR_ID = "SYSTEM"


@dataclass(frozen=True)
class Actor:
    id: str
    roles: frozenset[PlatformRole] = field(default_factory=lambda: frozenset({PlatformRole.USER}))

    @property
    def is_staff(self) -> bool:
        return bool(self.roles & STAFF_ROLES)

    @property
    def is_system(self) -> bool:
        return PlatformRole.SYSTEM in self.roles

    @property
    def actor_type(self) -> ActorType:
        return ActorType.SYSTEM if self.is_system else ActorType.USER

    @classmethod
    def system(cls) -> "Actor":
        return cls(id=SYSTEM_ACTOR_ID, roles=frozenset({PlatformRole.SYSTEM}))


def party_roles(actor: Actor, buyer_id: str, seller_id: str) -> frozenset[PartyRole]:
    """All party roles `actor` holds relative to one buyer/seller pair."""
    roles: set[PartyRole] = set()
    if actor.id == buyer_id:
        roles.add(PartyRole.BUYER)
    if actor.id == seller_id:
        roles.add(PartyRole.SELLER)
    if actor.is_staff:
        roles.add(PartyRole.ADMIN)
    return frozenset(roles)


def require_party(
    actor: Actor,
    allowed: frozenset[PartyRole],
    buyer_id: str,
    seller_id: str,
    action: str,
) -> PartyRole:
    """Return the first allowed role the actor holds, or raise AuthorizationError.

    Precedence BUYER > SELLER > ADMIN, so a staff member acting on their own
    purchase is treated as the buyer.
    """
    held = party_roles(actor, buyer_id, seller_id) & allowed
    for role in (PartyRole.BUYER, PartyRole.SELLER, PartyRole.ADMIN):
        if role in held:
            return role
    allowed_names = ", ".join(sorted(r.value for r in allowed))
    raise AuthorizationError(f"{action} requires one of [{allowed_names}]")


def require_staff(actor: Actor, action: str) -> None:
    if not actor.is_staff:
        raise AuthorizationError(f"{action} requires an admin")


def require_staff_or_system(actor: Actor, action: str) -> None:
    if not (actor.is_staff or actor.is_system):
        raise AuthorizationError(f"{action} requires an admin or the scheduler")
