"""
RP Conseil Hub — Shared Password Middleware
============================================
Validates the X-RP-Password header against DASHBOARD_PASSWORD.
The dashboard has a single shared secret; it is compared in constant time
and kept on request.state so routes can forward it to the webhooks.

Public endpoints (health, docs) bypass auth.
"""
from __future__ import annotations

import hmac
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from scripts.lib.errors import InvalidCredentialError
from scripts.lib.logger import setup_logger

logger = setup_logger("api_middleware")

PASSWORD_HEADER = "X-RP-Password"

# Paths that don't require auth
PUBLIC_PATHS = {
    "/api/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}


def check_password(candidate: str, expected: str) -> None:
    """Raise InvalidCredentialError unless ``candidate`` matches."""
    if not hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8")):
        raise InvalidCredentialError()


class PasswordMiddleware(BaseHTTPMiddleware):
    """
    Middleware that checks the shared dashboard password.

    Without REQUIRE_PASSWORD, requests that send no header pass through
    (development mode); a header that is sent is always checked.
    """

    def __init__(self, app, password: Optional[str] = None, require_password: bool = False):
        super().__init__(app)
        self.password = password or ""
        self.require_password = require_password

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in PUBLIC_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        candidate = request.headers.get(PASSWORD_HEADER)
        request.state.password = candidate

        if not candidate:
            if self.require_password:
                return JSONResponse(
                    status_code=401, content={"detail": f"Missing {PASSWORD_HEADER} header"},
                )
            return await call_next(request)

        if not self.password:
            logger.warning("%s sent but DASHBOARD_PASSWORD is not set", PASSWORD_HEADER)
            return await call_next(request)

        try:
            check_password(candidate, self.password)
        except InvalidCredentialError as e:
            logger.warning("Rejected %s %s: %s", request.method, path, e)
            return JSONResponse(status_code=403, content={"detail": "Invalid password"})

        return await call_next(request)
