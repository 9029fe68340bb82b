from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, Request, Response

from ...auth.passwords import verify_password
from ...auth.tokens import ACCESS_COOKIE, REFRESH_COOKIE, TokenManager
from ...config import MasStockConfig
from ...errors import AppError, AuthenticationError
from ...persistence import Repository
from ...persistence.models import AuditLog, User, utcnow
from ..deps import check_account_status, get_config, get_current_user, get_repo, get_tokens
from ..schemas import LoginRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _cookie_secure(config: MasStockConfig) -> bool:
    if config.auth.cookie_secure is not None:
        return config.auth.cookie_secure
    return config.is_production


def set_session_cookies(
    response: Response, user: User, tokens: TokenManager, config: MasStockConfig
) -> int:
    """Attach fresh access and refresh cookies; returns the access expiry (epoch seconds)."""
    secure = _cookie_secure(config)
    response.set_cookie(
        ACCESS_COOKIE,
        tokens.create_access_token(user),
        max_age=tokens.access_ttl,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
    )
    response.set_cookie(
        REFRESH_COOKIE,
        tokens.create_refresh_token(user),
        max_age=tokens.refresh_ttl,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
    )
    return int(time.time()) + tokens.access_ttl


async def _session_body(repo: Repository, user: User) -> dict:
    client = await repo.get_client_for_user(user.id)
    return {
        "user": user.public_dict(),
        "client": client.model_dump(mode="json") if client else None,
    }


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    repo: Repository = Depends(get_repo),
    tokens: TokenManager = Depends(get_tokens),
    config: MasStockConfig = Depends(get_config),
):
    user = await repo.get_user_by_email(body.email)
    if user is None or not verify_password(body.password, user.password_hash):
        logger.info("Failed login attempt for %s", body.email)
        raise AuthenticationError("Invalid credentials", "INVALID_CREDENTIALS")
    check_account_status(user)

    user = await repo.update_user(user.id, last_login=utcnow())
    expires_at = set_session_cookies(response, user, tokens, config)
    session = await _session_body(repo, user)
    await repo.create_audit_log(
        AuditLog(
            client_id=session["client"]["id"] if session["client"] else None,
            user_id=user.id,
            action="user_login",
            resource_type="user",
            resource_id=user.id,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    )
    logger.info("User %s logged in", user.id)
    return {"success": True, **session, "session": {"expires_at": expires_at}}


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(ACCESS_COOKIE, path="/")
    response.delete_cookie(REFRESH_COOKIE, path="/")
    return {"success": True, "message": "Logged out successfully"}


@router.post("/refresh")
async def refresh(
    request: Request,
    response: Response,
    repo: Repository = Depends(get_repo),
    tokens: TokenManager = Depends(get_tokens),
    config: MasStockConfig = Depends(get_config),
):
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise AuthenticationError("No refresh token provided", "NO_REFRESH_TOKEN")
    try:
        payload = tokens.verify(token, expected_type="refresh")
    except AppError:
        raise AuthenticationError("Invalid or expired refresh token", "INVALID_REFRESH_TOKEN")
    user = await repo.get_user(payload["userId"])
    if user is None or user.status != "active":
        raise AuthenticationError("Invalid or expired refresh token", "INVALID_REFRESH_TOKEN")

    expires_at = set_session_cookies(response, user, tokens, config)
    return {"success": True, "session": {"expires_at": expires_at}}


@router.get("/me")
async def me(user: User = Depends(get_current_user), repo: Repository = Depends(get_repo)):
    return {"success": True, **(await _session_body(repo, user))}
