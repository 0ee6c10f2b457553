"""Rate limiting using SlowAPI."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from studly.config import get_settings

settings = get_settings()


def get_user_or_ip(request: Request) -> str:
    """
    Get rate limit key from the signed-in user or IP address.

    Uses the user id once authentication has run, falls back to IP address.
    """
    user = getattr(request.state, "user", None)
    if user is not None:
        return f"user:{user.id}"

    return f"ip:{get_remote_address(request)}"


# Redis storage in production, memory:// in tests
limiter = Limiter(
    key_func=get_user_or_ip,
    storage_uri=settings.rate_limit_storage_uri or settings.redis_url,
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)


def rate_limit_uploads():
    """Rate limit for uploading and starting processing of recordings."""
    return limiter.limit(
        f"{max(1, settings.rate_limit_per_minute // 6)}/minute;{settings.rate_limit_per_hour // 5}/hour",
        key_func=get_user_or_ip,
    )


def rate_limit_generation():
    """Rate limit for direct note generation, which calls the LLM every time."""
    return limiter.limit(
        f"{max(1, settings.rate_limit_per_minute // 6)}/minute",
        key_func=get_user_or_ip,
    )


def rate_limit_general():
    """Rate limit for polling and read endpoints."""
    return limiter.limit(
        f"{settings.rate_limit_per_minute * 2}/minute;{settings.rate_limit_per_hour * 4}/hour",
        key_func=get_user_or_ip,
    )
