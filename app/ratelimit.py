import logging
import time
from collections import defaultdict, deque
from functools import wraps

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

# {"endpoint:ip": deque of request timestamps}
_requests: dict[str, deque[float]] = defaultdict(deque)

# {ip: (block_until_timestamp, violation_count)}
_blocked_ips: dict[str, tuple[float, int]] = {}

BLOCK_DURATION_SECONDS = 3600
VIOLATIONS_BEFORE_BLOCK = 3
VIOLATION_MEMORY_SECONDS = 300


def _client_ip(request: Request) -> str:
    """Client IP, preferring proxy headers."""
    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _blocked_for(ip: str, now: float) -> float:
    """Seconds until `ip` is unblocked, 0 if it is not blocked."""
    entry = _blocked_ips.get(ip)
    if entry is None:
        return 0
    block_until, count = entry
    if now > block_until:
        del _blocked_ips[ip]
        return 0
    return block_until - now if count >= VIOLATIONS_BEFORE_BLOCK else 0


def _record_violation(ip: str, now: float) -> None:
    _, count = _blocked_ips.get(ip, (0.0, 0))
    count += 1
    if count >= VIOLATIONS_BEFORE_BLOCK:
        logger.warning("Blocking %s for %ss after %d rate limit violations", ip, BLOCK_DURATION_SECONDS, count)
        _blocked_ips[ip] = (now + BLOCK_DURATION_SECONDS, count)
    else:
        _blocked_ips[ip] = (now + VIOLATION_MEMORY_SECONDS, count)


def _allow(key: str, max_requests: int, window_seconds: int, now: float) -> bool:
    timestamps = _requests[key]
    while timestamps and timestamps[0] <= now - window_seconds:
        timestamps.popleft()
    if len(timestamps) >= max_requests:
        return False
    timestamps.append(now)
    return True


def reset() -> None:
    _requests.clear()
    _blocked_ips.clear()


def rate_limit(max_requests: int, window_seconds: int):
    """
    Per-IP request limit for an endpoint that takes a `request: Request`.

    Usage:
        @router.post("/login")
        @rate_limit(max_requests=10, window_seconds=60)
        async def login(request: Request, ...):
            ...
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            request = kwargs.get("request")
            if request is None:
                request = next((a for a in args if isinstance(a, Request)), None)
            if request is None:
                return await func(*args, **kwargs)

            ip = _client_ip(request)
            now = time.time()

            if _blocked_for(ip, now):
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail="Too many requests. You are temporarily blocked. Try again in 1 hour.",
                )

            if not _allow(f"{func.__name__}:{ip}", max_requests, window_seconds, now):
                _record_violation(ip, now)
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail="Too many requests. Please try again later.",
                )

            return await func(*args, **kwargs)

        return wrapper
    return decorator
