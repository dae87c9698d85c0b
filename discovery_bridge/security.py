"""Security-related helpers (built-in auth).

Optional bearer-token protection for the HTTP API.
"""

from __future__ import annotations

import secrets

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


def _parse_bearer_token(header_value: str) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header_value:
        return None

    scheme, _, param = header_value.partition(" ")
    if scheme.lower() != "bearer":
        return None
    param = param.strip()
    return param or None


class ApiTokenMiddleware(BaseHTTPMiddleware):
    """Protect routes with a static API token.

    All paths except an allowlist (currently /health) require the token.
    """

    def __init__(self, app, *, token: str, allow_paths: set[str] | None = None):
        super().__init__(app)
        self._token = token
        self._allow_paths = allow_paths or {"/health"}

    def _unauthorized(self) -> Response:
        return Response(
            content="Unauthorized",
            status_code=401,
            headers={"WWW-Authenticate": 'Bearer realm="DiscoveryBridge"'},
        )

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self._allow_paths:
            return await call_next(request)

        token = _parse_bearer_token(request.headers.get("Authorization", ""))
        if token is None or not secrets.compare_digest(token, self._token):
            return self._unauthorized()

        return await call_next(request)
