"""Caller identity and per-endpoint rate limiting.

The web app signs a short-lived HS256 token for its session user; the
``email`` claim is the identity and the rate-limit key.
"""
import logging
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fossgen.config import settings
from fossgen.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

security_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Unauthorized") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED, detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_email(
    token: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> str:
    """Verify the bearer token and return the caller's email."""
    if token is None:
        raise _unauthorized()
    if not settings.AUTH_JWT_SECRET:
        logger.error("AUTH_JWT_SECRET is not configured, rejecting all callers")
        raise _unauthorized()
    try:
        claims = jwt.decode(
            token.credentials,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            options={"require": ["exp"]},
        )
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise _unauthorized("Invalid authentication credentials")
    email = claims.get("email")
    if not email:
        raise _unauthorized("Invalid token claims")
    return email


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def rate_limited(bucket: str, noun: str = "generations"):
    """Dependency factory: authenticate, then count one request against ``bucket``.

    Returns the caller's email so handlers need only this one dependency.
    """
    async def dependency(
        email: str = Depends(get_current_user_email),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> str:
        result = limiter.check(email, bucket)
        if not result.success:
            window = "minute" if limiter.window_seconds == 60 else f"{limiter.window_seconds:.0f}s"
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded. Max {result.limit} {noun} per {window}.",
                headers=result.headers(limiter.clock()),
            )
        return email
    return dependency
