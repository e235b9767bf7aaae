import logging
from typing import Annotated

from fastapi import Cookie, Depends, Request, Response

from app.config import SESSION_COOKIE_NAME, SESSION_EXPIRY_DAYS, is_production
from app.models import AccountSummary
from app.services.auth import AuthService

logger = logging.getLogger(__name__)


# ── Service ────────────────────────────────────────────────────────────────


def get_auth_service(request: Request) -> AuthService:
    """The AuthService built during application startup."""
    return request.app.state.auth_service


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


# ── Session cookie ─────────────────────────────────────────────────────────


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="strict",
        secure=is_production(),
        max_age=SESSION_EXPIRY_DAYS * 86400,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        httponly=True,
        samesite="strict",
        secure=is_production(),
        path="/",
    )


async def get_current_user(
    service: AuthServiceDep,
    auth_token: Annotated[str | None, Cookie(alias=SESSION_COOKIE_NAME)] = None,
) -> AccountSummary | None:
    """The signed-in account, or None when the cookie is missing or invalid."""
    if not auth_token:
        return None
    return await service.current_account(auth_token)


CurrentUser = Annotated[AccountSummary | None, Depends(get_current_user)]
