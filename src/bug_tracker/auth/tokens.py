"""Session tokens: role lookup, permission merge, JWT signing and the auth cookie."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import Response

from bug_tracker.config import Settings
from bug_tracker.db.repository import RoleRepository
from bug_tracker.errors import AuthenticationError
from bug_tracker.models.models import Role, User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def user_roles(user: User) -> list[str]:
    role = user.role
    if isinstance(role, (list, tuple)):
        return list(role)
    return [role] if role else []


async def fetch_roles(user: User, roles: RoleRepository) -> list[Role]:
    """Resolve every role the user holds. Unknown roles raise NotFoundError."""
    return [await roles.find_role_by_name(name) for name in user_roles(user)]


def merge_permissions(user: User, roles: list[Role]) -> dict[str, bool]:
    permissions: dict[str, bool] = dict(getattr(user, "permissions", None) or {})
    for role in roles:
        for name, granted in (role.permissions or {}).items():
            if granted:
                permissions[name] = True
    return permissions


async def issue_auth_token(user: User, roles: RoleRepository, settings: Settings) -> str:
    resolved = await fetch_roles(user, roles)
    permissions = merge_permissions(user, resolved)
    now = datetime.now(timezone.utc)
    claims = {
        "_id": user.id,
        "email": user.email,
        "role": user_roles(user),
        "permissions": permissions,
        "name": user.full_name,
        "iat": now,
        "exp": now + timedelta(minutes=settings.token_expiry_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)


def issue_auth_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=settings.token_expiry_minutes * 60,
        httponly=True,
        samesite="strict",
        secure=True,
    )


def clear_auth_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        settings.auth_cookie_name, httponly=True, samesite="strict", secure=True
    )


def decode_auth_token(token: str, settings: Settings) -> dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Session expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.warning("Rejected auth token: %s", exc)
        raise AuthenticationError("Invalid auth token") from exc
