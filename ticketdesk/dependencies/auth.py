from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated, Mapping

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ticketdesk.core.errors import AuthError, ForbiddenError, NotFoundError
from ticketdesk.users.models import Actor, Role

from .services import UserServiceDep


@dataclass(frozen=True, slots=True)
class Identity:
    """What the identity provider knows about a bearer token."""

    user_id: str
    role: Role


class TokenIdentityProvider:
    """Static bearer token map standing in for an external identity provider."""

    def __init__(self, tokens: Mapping[str, tuple[str, str]]) -> None:
        self._tokens = {
            token: Identity(user_id=user_id, role=Role(role.upper()))
            for token, (user_id, role) in tokens.items()
        }

    def resolve(self, token: str | None) -> Identity | None:
        """Return the identity for ``token``; ``None`` when no token was sent."""

        if token is None:
            return None
        identity = self._tokens.get(token)
        if identity is None:
            raise AuthError("Invalid authentication credentials")
        return identity


bearer_scheme = HTTPBearer(auto_error=False)


def _identity_for(request: Request, credentials: HTTPAuthorizationCredentials | None) -> Identity | None:
    if hasattr(request.state, "identity"):
        return request.state.identity
    provider: TokenIdentityProvider | None = getattr(request.app.state, "identity_provider", None)
    if provider is None:
        raise AuthError("Authentication is not configured")
    identity = provider.resolve(credentials.credentials if credentials is not None else None)
    request.state.identity = identity
    return identity


async def get_optional_actor(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    users: UserServiceDep,
) -> Actor | None:
    """Resolve the caller, or ``None`` for anonymous requests."""

    cached = getattr(request.state, "actor", None)
    if isinstance(cached, Actor):
        return cached

    identity = _identity_for(request, credentials)
    if identity is None:
        return None
    try:
        user = await users.get_user(identity.user_id)
    except NotFoundError as exc:
        raise AuthError("Unknown user for authentication credentials") from exc
    actor = Actor(id=user.id, name=user.name, role=identity.role)
    request.state.actor = actor
    return actor


async def get_current_actor(actor: Annotated[Actor | None, Depends(get_optional_actor)]) -> Actor:
    if actor is None:
        raise AuthError("Missing authentication credentials")
    return actor


def role_required(role: Role) -> Callable[[Actor], Actor]:
    """Dependency factory ensuring the current actor has the requested role."""

    async def dependency(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        if actor.role != role:
            raise ForbiddenError("Insufficient permissions")
        return actor

    return dependency


require_manager = role_required(Role.MANAGER)

CurrentActor = Annotated[Actor, Depends(get_current_actor)]
OptionalActor = Annotated[Actor | None, Depends(get_optional_actor)]
ManagerActor = Annotated[Actor, Depends(require_manager)]
