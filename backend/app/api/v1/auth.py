"""Session identity for the API.

Sessions are bearer JWTs issued by the surrounding intranet; the token's
``sub`` claim carries the user id. Anonymous routes never look at it.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.identity import Actor
from app.database import get_db
from app.exceptions import AuthenticationError
from app.models.user import User

router = APIRouter()
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


class ActorResponse(BaseModel):
    """Current session identity."""

    id: UUID
    role: str
    email: str | None
    display_name: str | None


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Actor | None:
    """Resolve the optional bearer session to an Actor.

    No header means no actor. A header that does not verify is an error,
    never a silent downgrade to anonymous.
    """
    if credentials is None:
        return None
    try:
        payload = jwt.decode(
            credentials.credentials, settings.secret_key, algorithms=[settings.jwt_algorithm]
        )
        subject = payload.get("sub")
        if subject is None:
            raise AuthenticationError("Could not validate credentials")
        user_id = UUID(str(subject))
    except (JWTError, ValueError):
        raise AuthenticationError("Could not validate credentials")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise AuthenticationError("Could not validate credentials")

    return Actor(id=user.id, role=user.role, email=user.email, display_name=user.display_name)


async def require_actor(
    actor: Annotated[Actor | None, Depends(get_current_actor)],
) -> Actor:
    """Require an authenticated session."""
    if actor is None:
        raise AuthenticationError()
    return actor


@router.get("/me", response_model=ActorResponse)
async def get_current_actor_info(
    actor: Annotated[Actor, Depends(require_actor)],
) -> ActorResponse:
    """Get current session identity."""
    return ActorResponse(
        id=actor.id,
        role=actor.role,
        email=actor.email,
        display_name=actor.display_name,
    )
