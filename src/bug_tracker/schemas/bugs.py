from datetime import datetime
from typing import Literal

from pydantic import field_validator

from bug_tracker.db.object_id import parse_object_id
from bug_tracker.errors import InvalidIdError
from bug_tracker.schemas.common import CamelModel, PublicModel, Text

BugStatus = Literal["open", "in_progress", "resolved", "closed"]
Classification = Literal["unclassified", "approved", "unapproved", "duplicate"]


class BugCreate(CamelModel):
    title: Text
    description: Text
    steps_to_reproduce: Text


class BugUpdate(CamelModel):
    title: Text | None = None
    description: Text | None = None
    steps_to_reproduce: Text | None = None
    status: BugStatus | None = None


class BugClassify(CamelModel):
    classification: Classification


class BugAssign(CamelModel):
    assigned_to_user_id: str

    @field_validator("assigned_to_user_id")
    @classmethod
    def _valid_id(cls, value: str) -> str:
        if not value:
            raise ValueError("assignedToUserId is required")
        try:
            return parse_object_id(value)
        except InvalidIdError as exc:
            raise ValueError("assignedToUserId is not a valid ObjectId") from exc


class BugClose(CamelModel):
    closed: bool


class BugPublic(PublicModel):
    title: str
    description: str
    steps_to_reproduce: str
    classification: str
    status: str
    closed: bool
    closed_on: datetime | None = None
    closed_by_user_id: str | None = None
    closed_by_name: str | None = None
    assigned_to_user_id: str | None = None
    assigned_to_name: str | None = None
    assigned_on: datetime | None = None
    created_by_user_id: str | None = None
    created_by_name: str | None = None
    classified_on: datetime | None = None
    created_on: datetime
    last_updated_on: datetime | None = None


class BugPage(CamelModel):
    bugs: list[BugPublic]
    total_bugs: int
    total_pages: int
    page_number: int
    page_size: int


class CommentCreate(CamelModel):
    text: Text


class CommentPublic(PublicModel):
    bug_id: str
    author_id: str | None = None
    author_name: str | None = None
    text: str
    created_on: datetime
