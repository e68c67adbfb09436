"""JWT Bearer identity middleware.

Tokens are issued by the external authorization service; this middleware only
verifies them and exposes the claims (``sub``, ``roles``, ``provider_id``)
on ``request.state.user``. Routes decide what the identity may do.
"""

import logging

from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from leadbroker.config import settings
from leadbroker.logging_config import bind_request_context

logger = logging.getLogger(__name__)

ANONYMOUS = {"sub": "anonymous", "roles": []}

# Paths that do not require authentication
_PUBLIC_PATHS = {
    "/api/v1/health",
    "/api/v1/health/live",
    "/api/v1/health/ready",
    "/docs",
    "/openapi.json",
    "/redoc",
}


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except JWTError as exc:
        logger.debug("JWT decode failed: %s", exc)
        raise ValueError(f"Invalid token: {exc}") from exc


class AuthMiddleware(BaseHTTPMiddleware):
    """Validate the Bearer token, if any, and attach the claims to request.state."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path in _PUBLIC_PATHS or path.startswith("/docs") or path.startswith("/redoc"):
            request.state.user = dict(ANONYMOUS)
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        if auth_header.startswith("Bearer "):
            request.state.user = self._validate_jwt(auth_header[7:])
            if "_auth_error" not in request.state.user:
                bind_request_context(getattr(request.state, "trace_id", "unknown"), user_id=request.state.user["sub"])
        else:
            # Routes that need an identity reject anonymous callers themselves
            request.state.user = dict(ANONYMOUS)
        return await call_next(request)

    @staticmethod
    def _validate_jwt(token: str) -> dict:
        try:
            payload = decode_token(token)
        except ValueError:
            return {**ANONYMOUS, "_auth_error": "invalid_token"}

        return {
            "sub": payload.get("sub", ""),
            "roles": payload.get("roles", []),
            "provider_id": payload.get("provider_id"),
        }
