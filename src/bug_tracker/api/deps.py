import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bug_tracker.auth.tokens import decode_auth_token
from bug_tracker.config import Settings
from bug_tracker.db.object_id import parse_object_id
from bug_tracker.db.repository import (
    BugRepository,
    CommentRepository,
    EditRepository,
    RoleRepository,
    UserRepository,
)
from bug_tracker.errors import AuthenticationError, AuthorizationError, InputError, InvalidIdError

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.database.session() as session:
        yield session


def get_users(session: AsyncSession = Depends(get_session)) -> UserRepository:
    return UserRepository(session)


def get_bugs(session: AsyncSession = Depends(get_session)) -> BugRepository:
    return BugRepository(session)


def get_comments(session: AsyncSession = Depends(get_session)) -> CommentRepository:
    return CommentRepository(session)


def get_edits(session: AsyncSession = Depends(get_session)) -> EditRepository:
    return EditRepository(session)


def get_roles(session: AsyncSession = Depends(get_session)) -> RoleRepository:
    return RoleRepository(session)


def valid_id(param_name: str):
    """Dependency validating the ``param_name`` path parameter as an identifier."""

    def dependency(request: Request) -> str:
        try:
            return parse_object_id(request.path_params.get(param_name))
        except InvalidIdError:
            raise InputError(f"{param_name} is not a valid ObjectId", param=param_name) from None

    return dependency


def _extract_token(request: Request, settings: Settings) -> str | None:
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        return token
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return None


async def resolve_auth(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> dict[str, Any] | None:
    """Decode the session token, if any, onto ``request.state``.

    A missing or invalid token resolves to an anonymous caller; the require_*
    dependencies decide whether that is acceptable.
    """
    request.state.auth = None
    request.state.user_role = None
    token = _extract_token(request, settings)
    if not token:
        return None
    try:
        claims = decode_auth_token(token, settings)
    except AuthenticationError:
        return None
    request.state.auth = claims
    request.state.user_role = claims.get("role") or None
    return claims


async def require_login(auth: dict[str, Any] | None = Depends(resolve_auth)) -> dict[str, Any]:
    if not auth:
        raise AuthenticationError("You must be logged in.")
    return auth


def require_role(*required_roles: str):
    async def dependency(
        request: Request, auth: dict[str, Any] | None = Depends(resolve_auth)
    ) -> dict[str, Any]:
        user_role = request.state.user_role
        if not user_role:
            raise AuthenticationError("Unauthorized: User role not found.")
        roles = [user_role] if isinstance(user_role, str) else list(user_role)
        if not any(role in required_roles for role in roles):
            raise AuthorizationError(
                f"Forbidden: Your role ({', '.join(roles)}) does not have permission. "
                f"Required roles: {', '.join(required_roles)}."
            )
        return auth

    return dependency


def require_permission(permission: str):
    async def dependency(auth: dict[str, Any] = Depends(require_login)) -> dict[str, Any]:
        if not (auth.get("permissions") or {}).get(permission):
            raise AuthorizationError(f"Forbidden: missing permission {permission}.")
        return auth

    return dependency


def audit_identity(auth: dict[str, Any] | None) -> dict[str, Any] | None:
    """The subset of token claims recorded on audit entries."""
    if not auth:
        return None
    return {key: auth.get(key) for key in ("_id", "email", "name", "role")}
