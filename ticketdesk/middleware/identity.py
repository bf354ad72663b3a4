"""Bearer token resolution middleware."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from ticketdesk.core.errors import AuthError
from ticketdesk.dependencies.auth import Identity, TokenIdentityProvider


class IdentityMiddleware(BaseHTTPMiddleware):
    """Populate ``request.state.identity`` from the ``Authorization`` header.

    Requests without a header pass through anonymously; route dependencies
    decide whether an identity is required.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        provider: TokenIdentityProvider | None = getattr(request.app.state, "identity_provider", None)
        if provider is None:
            return await call_next(request)

        authorization = request.headers.get("Authorization")
        token: str | None = None
        if authorization:
            scheme, _, credentials = authorization.partition(" ")
            if scheme.lower() != "bearer" or not credentials.strip():
                return JSONResponse(status_code=401, content={"message": "Invalid authentication credentials"})
            token = credentials.strip()

        try:
            identity: Identity | None = provider.resolve(token)
        except AuthError as exc:
            return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

        request.state.identity = identity
        return await call_next(request)
