"""Actor identity and the explicit role gate."""

from dataclasses import dataclass
from uuid import UUID

from app.exceptions import AuthenticationError, AuthorizationError


@dataclass(frozen=True)
class Actor:
    """Verified caller identity supplied by the session layer."""

    id: UUID
    role: str
    email: str | None = None
    display_name: str | None = None


def authorize(actor: Actor | None, required_role: str) -> Actor:
    """Allow the call only if the actor holds required_role.

    Manager-scoped operations call this first thing.
    """
    if actor is None:
        raise AuthenticationError()
    if actor.role != required_role:
        raise AuthorizationError()
    return actor
