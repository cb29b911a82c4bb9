from fastapi import Response

from storefront.config import Settings
from storefront.security import TOKEN_COOKIE


def set_token_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=TOKEN_COOKIE,
        value=token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="none" if settings.cookie_secure else "lax",
        path="/",
        max_age=60 * 60 * 24 * settings.jwt_expiry_days,
    )


def clear_token_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=TOKEN_COOKIE,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="none" if settings.cookie_secure else "lax",
    )
