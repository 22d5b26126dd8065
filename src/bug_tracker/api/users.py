import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Response, status

from bug_tracker.api.deps import (
    audit_identity,
    get_app_settings,
    get_edits,
    get_roles,
    get_users,
    require_login,
    require_permission,
    require_role,
    valid_id,
)
from bug_tracker.auth.passwords import hash_password, verify_password
from bug_tracker.auth.tokens import clear_auth_cookie, issue_auth_cookie, issue_auth_token, user_roles
from bug_tracker.config import Settings
from bug_tracker.db.queries import parse_age, parse_positive_int
from bug_tracker.db.repository import EditRepository, RoleRepository, UserRepository
from bug_tracker.errors import AuthenticationError, AuthorizationError, NotFoundError
from bug_tracker.models.models import User
from bug_tracker.schemas.common import Message
from bug_tracker.schemas.users import (
    AuthResult,
    UserLogin,
    UserPage,
    UserPublic,
    UserRegister,
    UserUpdate,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _user_snapshot(user: User) -> dict[str, Any]:
    return {
        "_id": user.id,
        "email": user.email,
        "givenName": user.given_name,
        "familyName": user.family_name,
        "role": user.role,
    }


async def _start_session(
    response: Response, user: User, roles: RoleRepository, settings: Settings, message: str
) -> AuthResult:
    token = await issue_auth_token(user, roles, settings)
    issue_auth_cookie(response, token, settings)
    return AuthResult(message=message, user_id=user.id, full_name=user.full_name, role=user_roles(user))


async def _update_fields(payload: UserUpdate, settings: Settings) -> dict[str, Any]:
    fields = payload.model_dump(exclude_none=True)
    if "password" in fields:
        fields["password"] = await hash_password(fields["password"], settings.salt_rounds)
    return fields


def _redacted(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: ("***" if k == "password" else v) for k, v in fields.items()}


@router.post("/register", response_model=AuthResult, status_code=status.HTTP_201_CREATED)
async def register(
    payload: UserRegister,
    response: Response,
    users: UserRepository = Depends(get_users),
    roles: RoleRepository = Depends(get_roles),
    edits: EditRepository = Depends(get_edits),
    settings: Settings = Depends(get_app_settings),
):
    if payload.role != "User":
        # Anyone can register; elevated roles are granted through PATCH /{userId}.
        raise AuthorizationError(f"Forbidden: self-registration cannot assign role {payload.role}.")
    hashed = await hash_password(payload.password, settings.salt_rounds)
    user = await users.register_user(
        email=payload.email,
        password=hashed,
        given_name=payload.given_name,
        family_name=payload.family_name,
        role="User",
    )
    await edits.save_audit_log("users", "insert", {"_id": user.id}, update=_user_snapshot(user))
    return await _start_session(response, user, roles, settings, "New user registered!")


@router.post("/login", response_model=AuthResult)
async def login(
    payload: UserLogin,
    response: Response,
    users: UserRepository = Depends(get_users),
    roles: RoleRepository = Depends(get_roles),
    settings: Settings = Depends(get_app_settings),
):
    user = await users.login_user(payload.email)
    if user is None or not await verify_password(payload.password, user.password):
        logger.info("Failed login for %s", payload.email)
        raise AuthenticationError("Invalid email or password.")
    return await _start_session(response, user, roles, settings, "Welcome back!")


@router.post("/logout", response_model=Message)
async def logout(response: Response, settings: Settings = Depends(get_app_settings)):
    clear_auth_cookie(response, settings)
    return Message(message="Logged out.")


@router.get("/list", response_model=UserPage)
async def list_users(
    keywords: str | None = Query(default=None),
    role: str | None = Query(default=None),
    min_age: str | None = Query(default=None, alias="minAge"),
    max_age: str | None = Query(default=None, alias="maxAge"),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    page_size: str | None = Query(default=None, alias="pageSize"),
    page_number: str | None = Query(default=None, alias="pageNumber"),
    users: UserRepository = Depends(get_users),
    settings: Settings = Depends(get_app_settings),
    _auth: dict = Depends(require_permission("canListUsers")),
):
    page = await users.get_all_users(
        keywords=keywords,
        role=role,
        min_age=parse_age(min_age),
        max_age=parse_age(max_age),
        sort_by=sort_by,
        page_size=parse_positive_int(page_size, settings.default_page_size),
        page_number=page_number,
    )
    return UserPage(
        users=[UserPublic.model_validate(u) for u in page.items],
        total_users=page.total,
        total_pages=page.total_pages,
        page_number=page.page_number,
        page_size=page.page_size,
    )


@router.get("/me", response_model=UserPublic)
async def get_me(
    users: UserRepository = Depends(get_users),
    auth: dict = Depends(require_login),
):
    user = await users.get_user_by_id(auth["_id"])
    if user is None:
        raise NotFoundError(f"User {auth['_id']} not found.")
    return UserPublic.model_validate(user)


@router.patch("/me", response_model=AuthResult)
async def update_me(
    payload: UserUpdate,
    response: Response,
    users: UserRepository = Depends(get_users),
    roles: RoleRepository = Depends(get_roles),
    edits: EditRepository = Depends(get_edits),
    settings: Settings = Depends(get_app_settings),
    auth: dict = Depends(require_login),
):
    fields = await _update_fields(payload, settings)
    # Changing your own role needs the admin endpoint.
    fields.pop("role", None)
    user = await users.update_user(auth["_id"], fields)
    if user is None:
        raise NotFoundError(f"User {auth['_id']} not found.")
    await edits.save_audit_log(
        "users", "update", {"_id": user.id}, update=_redacted(fields), auth=audit_identity(auth)
    )
    # Name or email may have changed; reissue so the token matches.
    return await _start_session(response, user, roles, settings, "Your profile was updated.")


@router.get("/{userId}", response_model=UserPublic)
async def get_user(
    user_id: str = Depends(valid_id("userId")),
    users: UserRepository = Depends(get_users),
    _auth: dict = Depends(require_permission("canListUsers")),
):
    user = await users.get_user_by_id(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found.")
    return UserPublic.model_validate(user)


@router.patch("/{userId}", response_model=UserPublic)
async def update_user(
    payload: UserUpdate,
    user_id: str = Depends(valid_id("userId")),
    users: UserRepository = Depends(get_users),
    edits: EditRepository = Depends(get_edits),
    settings: Settings = Depends(get_app_settings),
    auth: dict = Depends(require_permission("canEditAnyUser")),
):
    fields = await _update_fields(payload, settings)
    user = await users.update_user(user_id, fields)
    if user is None:
        raise NotFoundError(f"User {user_id} not found.")
    await edits.save_audit_log(
        "users", "update", {"_id": user_id}, update=_redacted(fields), auth=audit_identity(auth)
    )
    return UserPublic.model_validate(user)


@router.delete("/{userId}", response_model=Message)
async def delete_user(
    user_id: str = Depends(valid_id("userId")),
    users: UserRepository = Depends(get_users),
    edits: EditRepository = Depends(get_edits),
    auth: dict = Depends(require_role("Admin")),
):
    if not await users.delete_user(user_id):
        raise NotFoundError(f"User {user_id} not found.")
    await edits.save_audit_log("users", "delete", {"_id": user_id}, auth=audit_identity(auth))
    return Message(message=f"User {user_id} deleted.")
