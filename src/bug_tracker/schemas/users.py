from datetime import datetime
from typing import Literal

from bug_tracker.schemas.common import CamelModel, Email, Name, Password, PublicModel

RoleName = Literal[
    "User",
    "Admin",
    "Developer",
    "Business Analyst",
    "Quality Analyst",
    "Product Manager",
    "Technical Manager",
]


class UserRegister(CamelModel):
    email: Email
    password: Password
    given_name: Name
    family_name: Name
    role: RoleName = "User"


class UserLogin(CamelModel):
    email: Email
    password: Password


class UserUpdate(CamelModel):
    email: Email | None = None
    password: Password | None = None
    given_name: Name | None = None
    family_name: Name | None = None
    role: RoleName | None = None


class UserPublic(PublicModel):
    email: str
    given_name: str
    family_name: str
    full_name: str
    role: str
    created_on: datetime
    last_updated_on: datetime | None = None


class UserPage(CamelModel):
    users: list[UserPublic]
    total_users: int
    total_pages: int
    page_number: int
    page_size: int


class AuthResult(CamelModel):
    message: str
    user_id: str
    full_name: str
    role: list[str]
