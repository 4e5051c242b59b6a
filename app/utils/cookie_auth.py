"""
Session cookie handling. The cookie carries a signed JWT with a sliding 24h expiry.
"""
from fastapi import Response, Request
from typing import Optional
import logging

from app.config import settings
from app.auth import create_access_token

logger = logging.getLogger(__name__)

COOKIE_MAX_AGE = settings.SESSION_MAX_AGE_HOURS * 3600


def set_session_cookie(response: Response, user_id: str) -> str:
    """
    Create a session token for the user and set it as an httpOnly cookie.

    Returns:
        The token, so API clients can use it as a bearer token as well
    """
    token = create_access_token(data={"sub": str(user_id)})
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=COOKIE_MAX_AGE,
        path="/",
    )
    return token


def get_token_from_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/")
    logger.info("Session cookie cleared")
