"""FastAPI dependency injection providers."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.errors.exceptions import AuthenticationError, AuthorizationError
from leadbroker.events.notifier import Notifier
from leadbroker.services.actors import Actor


async def get_db(request: Request) -> AsyncGenerator:
    """Yield a database session; anything not committed by the route is rolled back."""
    session_factory = request.app.state.db_session_factory
    async with session_factory() as session:
        yield session


async def get_current_user(request: Request) -> dict:
    """Return the authenticated claims dict or raise 401."""
    user = getattr(request.state, "user", {})
    if user and "_auth_error" in user:
        raise AuthenticationError(user["_auth_error"])
    if not user or user.get("sub") in ("anonymous", ""):
        raise AuthenticationError("Authentication required")
    return user


async def get_actor(user: dict = Depends(get_current_user)) -> Actor:
    return Actor.from_claims(user)


def require_role(*roles: str):
    """Return a dependency that enforces one of the given roles."""

    async def _check(actor: Actor = Depends(get_actor)) -> Actor:
        if not {str(r) for r in actor.roles}.intersection(roles):
            raise AuthorizationError(f"Requires one of: {', '.join(roles)}")
        return actor

    return _check


def get_notifier(request: Request) -> Notifier:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = Notifier(request.app.state.db_session_factory)
        request.app.state.notifier = notifier
    return notifier


# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
EventNotifier = Annotated[Notifier, Depends(get_notifier)]
RequireArbitrator = Depends(require_role("arbitrator"))
