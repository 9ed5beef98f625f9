import functools
from typing import Optional

from quart import g, request

from .service import resolve_token
from ..common.errors import AuthenticationError


def bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None


def require_admin(view):
    """Reject the request with 401 unless it carries a live admin session token."""

    @functools.wraps(view)
    async def wrapper(*args, **kwargs):
        token = bearer_token()
        if token is None:
            raise AuthenticationError("Authorization token required")
        admin = await resolve_token(token)
        if admin is None:
            raise AuthenticationError("Invalid or expired token")
        g.admin = admin
        g.admin_token = token
        return await view(*args, **kwargs)

    return wrapper
