import jwt
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from bug_tracker.auth.passwords import hash_password, verify_password, verify_password_sync
from bug_tracker.auth.tokens import (
    ALGORITHM,
    decode_auth_token,
    issue_auth_token,
    merge_permissions,
    user_roles,
)
from bug_tracker.config import Settings
from bug_tracker.db.object_id import new_object_id
from bug_tracker.db.repository import RoleRepository
from bug_tracker.errors import AuthenticationError, NotFoundError
from bug_tracker.models.models import Role, User


def _user(role="Developer") -> User:
    return User(
        id=new_object_id(),
        email="ada@example.com",
        password="x",
        given_name="Ada",
        family_name="Lovelace",
        role=role,
    )


class TestPasswords:
    async def test_hash_and_verify(self) -> None:
        hashed = await hash_password("secret-pass", rounds=4)
        assert hashed.startswith("$2b$04$")
        assert await verify_password("secret-pass", hashed)
        assert not await verify_password("wrong-pass", hashed)

    def test_legacy_plain_text(self) -> None:
        assert verify_password_sync("legacy", "legacy")
        assert not verify_password_sync("other", "legacy")

    def test_malformed_hash(self) -> None:
        assert not verify_password_sync("secret-pass", "$2b$broken")


class TestPermissions:
    def test_user_roles(self) -> None:
        assert user_roles(_user("Admin")) == ["Admin"]
        assert user_roles(_user(["Developer", "Quality Analyst"])) == ["Developer", "Quality Analyst"]
        assert user_roles(_user(None)) == []

    def test_merge_is_a_union_of_grants(self) -> None:
        roles = [
            Role(name="Developer", permissions={"canCreateBug": True, "canCloseAnyBug": False}),
            Role(name="Quality Analyst", permissions={"canCloseAnyBug": True}),
        ]
        assert merge_permissions(_user(), roles) == {"canCreateBug": True, "canCloseAnyBug": True}


class TestTokens:
    async def test_issue_and_decode(self, settings: Settings, session: AsyncSession) -> None:
        user = _user("Admin")
        token = await issue_auth_token(user, RoleRepository(session), settings)
        claims = decode_auth_token(token, settings)
        assert claims["_id"] == user.id
        assert claims["email"] == "ada@example.com"
        assert claims["name"] == "Ada Lovelace"
        assert claims["role"] == ["Admin"]
        assert claims["permissions"]["canListUsers"] is True
        assert claims["exp"] - claims["iat"] == 3600

    async def test_unknown_role(self, settings: Settings, session: AsyncSession) -> None:
        with pytest.raises(NotFoundError, match="Role Wizard not found"):
            await issue_auth_token(_user("Wizard"), RoleRepository(session), settings)

    async def test_expired(self, settings: Settings, session: AsyncSession) -> None:
        expired = settings.model_copy(update={"token_expiry_minutes": -5})
        token = await issue_auth_token(_user(), RoleRepository(session), expired)
        with pytest.raises(AuthenticationError, match="Session expired"):
            decode_auth_token(token, settings)

    def test_wrong_secret(self, settings: Settings) -> None:
        token = jwt.encode({"_id": "x"}, "some-other-secret-of-sufficient-length", algorithm=ALGORITHM)
        with pytest.raises(AuthenticationError, match="Invalid auth token"):
            decode_auth_token(token, settings)
