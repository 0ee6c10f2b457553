"""Authentication and authorization utilities."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from studly.config import get_settings
from studly.db.session import get_db

logger = logging.getLogger(__name__)

settings = get_settings()


@dataclass
class CurrentUser:
    """The user behind a request, as reported by the identity provider."""

    id: str
    email: Optional[str] = None


class IdentityClient:
    """Resolves Supabase access tokens to users."""

    def __init__(self, base_url: str, anon_key: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout

    async def get_user(self, access_token: str) -> Optional[CurrentUser]:
        """
        Look up the user for an access token.

        Returns None when the provider rejects the token.
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{self.base_url}/auth/v1/user",
                headers={
                    "apikey": self.anon_key,
                    "Authorization": f"Bearer {access_token}",
                },
            )

        if response.status_code in (401, 403):
            return None
        response.raise_for_status()

        data = response.json()
        if not data.get("id"):
            return None
        return CurrentUser(id=data["id"], email=data.get("email"))


identity_client = IdentityClient(settings.supabase_url, settings.supabase_anon_key)


async def require_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> CurrentUser:
    """Extract the bearer token and resolve it to a user."""
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    if not authorization.startswith("Bearer ") or not authorization[7:].strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization scheme. Use 'Bearer <access_token>'",
        )

    try:
        user = await identity_client.get_user(authorization[7:].strip())
    except httpx.HTTPError as e:
        logger.error(f"Identity provider lookup failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable",
        )

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    # Store in request state for rate limiting
    request.state.user = user
    return user


async def require_subscriber(
    user: CurrentUser = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Require a user with an active or trialing subscription."""
    from studly.services.usage import usage_service

    subscription = await usage_service.get_active_subscription(db, user.id)
    if subscription is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No active subscription",
        )
    return user

