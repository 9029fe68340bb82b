"""Request dependencies: services from app state and the auth chain."""

from __future__ import annotations

from fastapi import Depends, Request

from ..auth.tokens import ACCESS_COOKIE, TokenManager, looks_like_jwt
from ..config import MasStockConfig
from ..dispatch import ExecutionDispatcher
from ..errors import AuthenticationError, AuthorizationError
from ..persistence import Repository
from ..persistence.models import Client, User


def get_config(request: Request) -> MasStockConfig:
    return request.app.state.config


def get_repo(request: Request) -> Repository:
    return request.app.state.repository


def get_tokens(request: Request) -> TokenManager:
    return request.app.state.tokens


def get_dispatcher(request: Request) -> ExecutionDispatcher:
    return request.app.state.dispatcher


def extract_token(request: Request) -> str:
    """Access token from the cookie, else from a bearer header."""
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        token = header[len("Bearer ") :].strip()
        if not looks_like_jwt(token):
            raise AuthenticationError("Invalid token format", "INVALID_TOKEN_FORMAT")
        return token
    raise AuthenticationError("No authentication token provided", "NO_TOKEN")


def check_account_status(user: User) -> None:
    if user.status == "suspended":
        raise AuthorizationError("Account suspended", "ACCOUNT_SUSPENDED")
    if user.status == "deleted":
        raise AuthorizationError("Account deleted", "ACCOUNT_DELETED")


async def get_current_user(
    request: Request,
    repo: Repository = Depends(get_repo),
    tokens: TokenManager = Depends(get_tokens),
) -> User:
    payload = tokens.verify(extract_token(request))
    user = await repo.get_user(payload["userId"])
    if user is None:
        raise AuthenticationError("User not found", "USER_NOT_FOUND")
    check_account_status(user)
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise AuthorizationError("Admin access required", "FORBIDDEN")
    return user


async def require_client(
    user: User = Depends(get_current_user), repo: Repository = Depends(get_repo)
) -> Client:
    client = await repo.get_client_for_user(user.id)
    if client is None:
        raise AuthorizationError("No client account associated with this user", "NO_CLIENT_ACCOUNT")
    if client.status != "active":
        raise AuthorizationError("Client account is not active", "CLIENT_NOT_ACTIVE")
    return client
