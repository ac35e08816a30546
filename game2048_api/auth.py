"""
Request checks for the 2048 game server: bearer token, player addresses and
signed-message freshness
"""

import re
import time
from typing import Optional

from fastapi import FastAPI, HTTPException, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
SIGNATURE_MAX_AGE_SECONDS = 5 * 60


class TokenAuthMiddleware(BaseHTTPMiddleware):
    """Middleware for token-based authentication"""

    def __init__(self, app: FastAPI, token: str):
        """Initialize the middleware

        Args:
            app: FastAPI application
            token: Authentication token
        """
        super().__init__(app)
        self.token = token

    async def dispatch(self, request: Request, call_next):
        # Skip authentication for docs
        if request.url.path.startswith("/docs") or request.url.path.startswith("/openapi"):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return Response(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content="Missing Authorization header",
                headers={"WWW-Authenticate": "Bearer"}
            )

        try:
            scheme, token = auth_header.split()
            if scheme.lower() != "bearer":
                raise ValueError("Invalid authentication scheme")
            if token != self.token:
                raise ValueError("Invalid token")
        except ValueError:
            return Response(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content="Invalid credentials",
                headers={"WWW-Authenticate": "Bearer"}
            )

        return await call_next(request)


def is_address(address: Optional[str]) -> bool:
    return isinstance(address, str) and bool(ADDRESS_RE.match(address))


def normalize_address(address: str) -> str:
    """Lower-case form used as the key for a player's games"""
    return address.lower()


def short_address(address: str) -> str:
    if not is_address(address):
        return ""
    return f"{address[:6]}...{address[-4:]}"


def require_address(address: Optional[str]) -> str:
    """Validate a player address, raising a 400 for anything malformed

    Returns:
        The normalized address
    """
    if not is_address(address):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid Ethereum address"
        )
    return normalize_address(address)


def signature_message(action: str, address: str, timestamp: int) -> str:
    """Text a wallet signs to authorize ``action``; recovery happens client side"""
    return f"FHEVM 2048 Game\nAction: {action}\nAddress: {address}\nTimestamp: {timestamp}"


def is_recent_timestamp(timestamp: int, now: Optional[float] = None,
                        max_age: int = SIGNATURE_MAX_AGE_SECONDS) -> bool:
    now = int(time.time() if now is None else now)
    return abs(now - int(timestamp)) <= max_age
