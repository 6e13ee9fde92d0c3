"""API key authentication middleware.

When an API key is configured (``TASKGATE_API_KEY``), every request
except health checks and the OpenAPI docs must include a matching
``X-API-Key`` header or ``api_key`` query parameter.

When no key is configured, authentication is disabled.
"""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

if TYPE_CHECKING:
    from starlette.responses import Response

# Paths that never require authentication
_PUBLIC_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})


def _is_public(path: str) -> bool:
    return path in _PUBLIC_PATHS


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Reject HTTP requests that lack a valid API key.

    If *api_key* is empty or ``None`` the middleware lets all requests
    through (auth disabled).
    """

    def __init__(self, app: object, api_key: str | None = None) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._api_key: str | None = api_key or None

    @property
    def enabled(self) -> bool:
        return self._api_key is not None

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.enabled or _is_public(request.url.path):
            return await call_next(request)

        provided = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if not provided or not secrets.compare_digest(provided, self._api_key):  # type: ignore[arg-type]
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )

        return await call_next(request)
