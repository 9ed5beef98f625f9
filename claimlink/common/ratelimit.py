import functools
import logging
import math
import time
from typing import Callable, Dict, Optional

from quart import g, request

from .config import settings
from .errors import RateLimitError
from .redis_client import get_redis

_logger = logging.getLogger(__name__)


def client_id() -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    for header in ("X-Real-IP", "CF-Connecting-IP"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    return request.remote_addr or "unknown"


def rate_limit_key(scope: str, client: str) -> str:
    return f"ratelimit:{scope}:{client}"


async def hit(scope: str, client: str, limits: Dict[str, int]) -> Dict[str, int]:
    """Count one request in the current fixed window and report the budget left."""
    r = await get_redis()
    key = rate_limit_key(scope, client)
    window_s = max(int(math.ceil(limits["window_ms"] / 1000)), 1)
    count = await r.incr(key)
    if count == 1:
        await r.expire(key, window_s)
    ttl = await r.ttl(key)
    if ttl is None or ttl < 0:
        # key lost its expiry (e.g. crash between INCR and EXPIRE)
        await r.expire(key, window_s)
        ttl = window_s
    return {
        "limit": limits["max"],
        "count": int(count),
        "remaining": max(limits["max"] - int(count), 0),
        "reset": int(time.time()) + int(ttl),
        "retry_after": int(ttl),
    }


def rate_limited(scope: str, limits: Optional[Callable[[], Dict[str, int]]] = None):
    """Decorate a view with a Redis fixed-window limit.

    ``limits`` is called per request so config changes apply without a restart.
    When Redis is unreachable the request goes through and the error is logged.
    """

    def decorator(view):
        @functools.wraps(view)
        async def wrapper(*args, **kwargs):
            if not settings.RATE_LIMIT_ENABLED:
                return await view(*args, **kwargs)
            budget = (limits or settings.rate_limit)()
            client = client_id()
            try:
                state = await hit(scope, client, budget)
            except Exception as e:
                _logger.error("Rate limiting unavailable, allowing request | scope=%s err=%s", scope, e)
                return await view(*args, **kwargs)
            g.rate_limit = state
            if state["count"] > state["limit"]:
                _logger.warning("Rate limit exceeded | scope=%s client=%s", scope, client)
                raise RateLimitError(state["retry_after"])
            return await view(*args, **kwargs)

        return wrapper

    return decorator


def apply_headers(response) -> None:
    state = g.get("rate_limit")
    if not state:
        return
    response.headers["X-RateLimit-Limit"] = str(state["limit"])
    response.headers["X-RateLimit-Remaining"] = str(state["remaining"])
    response.headers["X-RateLimit-Reset"] = str(state["reset"])
    if state["count"] > state["limit"]:
        response.headers["Retry-After"] = str(state["retry_after"])
