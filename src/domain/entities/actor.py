from dataclasses import dataclass
from enum import Enum


class ActorRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    OWNER = "owner"
    USER = "user"


PRIVILEGED_ROLES: frozenset[ActorRole] = frozenset({ActorRole.ADMIN, ActorRole.STAFF})


@dataclass(frozen=True)
class Actor:
    """
    The identity performing an operation, as supplied by the authentication
    collaborator. Trusted as given.
    """

    id: str
    role: ActorRole = ActorRole.USER

    @property
    def has_moderation_privilege(self) -> bool:
        return self.role in PRIVILEGED_ROLES


@dataclass(frozen=True)
class ActorProfile:
    """Display details used when presenting audit records for review."""

    id: str
    name: str
    email: str | None = None
    role: ActorRole = ActorRole.USER
