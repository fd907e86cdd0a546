"""Shared-secret admin session.

Logging in sets an HttpOnly ``admin_token`` cookie holding
HMAC-SHA256(cookie_secret, admin_password). Changing either secret logs
every admin out.
"""

import hashlib
import hmac

from fastapi import APIRouter, Request, Response

from inoutboard.config import Settings
from inoutboard.errors import AuthError
from inoutboard.models import LoginRequest

ADMIN_COOKIE = "admin_token"

router = APIRouter(prefix="/admin")


def admin_token(settings: Settings) -> str:
    return hmac.new(
        settings.cookie_secret.encode(),
        settings.admin_password.encode(),
        hashlib.sha256,
    ).hexdigest()


def is_admin(request: Request) -> bool:
    settings: Settings = request.app.state.settings
    token = request.cookies.get(ADMIN_COOKIE, "")
    return hmac.compare_digest(token, admin_token(settings))


async def require_admin(request: Request) -> None:
    """Route dependency guarding structural mutations."""
    settings: Settings = request.app.state.settings
    if settings.auth_enabled and not is_admin(request):
        raise AuthError("Unauthorized")


@router.post("/login")
async def login(body: LoginRequest, request: Request, response: Response) -> dict:
    settings: Settings = request.app.state.settings
    if not hmac.compare_digest(body.password.encode(), settings.admin_password.encode()):
        raise AuthError("Invalid password")
    response.set_cookie(
        ADMIN_COOKIE,
        admin_token(settings),
        httponly=True,
        samesite="strict",
        path="/",
    )
    return {"success": True}


@router.post("/logout")
async def logout(response: Response) -> dict:
    response.delete_cookie(ADMIN_COOKIE, path="/", httponly=True, samesite="strict")
    return {"success": True}


@router.get("/session")
async def session(request: Request) -> dict[str, bool]:
    return {"admin": is_admin(request)}
