import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from bug_tracker.db.object_id import new_object_id, parse_object_id
from bug_tracker.db.queries import (
    DEFAULT_PAGE_SIZE,
    apply_sort,
    build_bug_filters,
    build_user_filters,
    get_sort_options,
    page_bounds,
    total_pages,
)
from bug_tracker.errors import (
    BugTrackerError,
    DuplicateEmailError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
)
from bug_tracker.models.models import Bug, Comment, Edit, Role, User, utcnow

logger = logging.getLogger(__name__)

# Entity mutations only flush. The request commits once, in save_audit_log, so a
# change and its audit entry land in the same transaction.

T = TypeVar("T")

_ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "open": {"in_progress", "resolved", "closed"},
    "in_progress": {"open", "resolved", "closed"},
    "resolved": {"open", "closed"},
    "closed": {"open"},
}


@dataclass
class Page(Generic[T]):
    items: list[T]
    total: int
    total_pages: int
    page_number: int
    page_size: int


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Log store failures and re-raise them as PersistenceError("Failed to <action>")."""
    try:
        yield
    except BugTrackerError:
        raise
    except SQLAlchemyError as exc:
        logger.exception("Error in %s", action)
        raise PersistenceError(f"Failed to {action}", cause=str(exc)) from exc


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_status_transition(current: str, new: str) -> None:
    if current == new:
        return
    if current not in _ALLOWED_TRANSITIONS or new not in _ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current, new)


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all_users(
        self,
        *,
        keywords: str | None = None,
        role: str | None = None,
        min_age: int | None = None,
        max_age: int | None = None,
        sort_by: str | None = None,
        page_size: Any = DEFAULT_PAGE_SIZE,
        page_number: Any = 1,
    ) -> Page[User]:
        logger.debug(
            "get_all_users keywords=%r role=%r min_age=%r max_age=%r sort_by=%r page_size=%r page_number=%r",
            keywords, role, min_age, max_age, sort_by, page_size, page_number,
        )
        conditions = build_user_filters(keywords=keywords, role=role, min_age=min_age, max_age=max_age)
        page_number, page_size, offset = page_bounds(page_number, page_size)

        stmt = select(User).options(defer(User.password, raiseload=True)).where(*conditions)
        stmt = apply_sort(stmt, User, get_sort_options(sort_by, "user"))
        stmt = stmt.offset(offset).limit(page_size)

        with _translate_errors("get users"):
            result = await self.session.execute(stmt)
            users = list(result.scalars().all())
            total = await self.session.scalar(
                select(func.count()).select_from(User).where(*conditions)
            )
        total = int(total or 0)
        return Page(users, total, total_pages(total, page_size), page_number, page_size)

    async def get_user_by_id(self, user_id: str) -> User | None:
        """Fetch a user without its password; ``None`` if no such user."""
        user_id = parse_object_id(user_id)
        with _translate_errors("get user by ID"):
            result = await self.session.execute(
                select(User)
                .options(defer(User.password, raiseload=True))
                .where(User.id == user_id)
            )
            return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> User | None:
        with _translate_errors("get user by email"):
            result = await self.session.execute(
                select(User).where(User.email == normalize_email(email))
            )
            return result.scalar_one_or_none()

    # Credentials check; unlike the other reads this one loads the password.
    login_user = get_user_by_email

    async def register_user(
        self,
        *,
        email: str,
        password: str,
        given_name: str,
        family_name: str,
        role: str = "User",
    ) -> User:
        email = normalize_email(email)
        with _translate_errors("register user"):
            # Fast path only; the unique index on email settles concurrent registrations.
            existing = await self.session.scalar(select(User.id).where(User.email == email))
            if existing is not None:
                raise DuplicateEmailError(email)

            user = User(
                id=new_object_id(),
                email=email,
                password=password,
                given_name=given_name,
                family_name=family_name,
                role=role,
                created_on=utcnow(),
            )
            self.session.add(user)
            try:
                await self.session.flush()
            except IntegrityError as exc:
                await self.session.rollback()
                raise DuplicateEmailError(email) from exc

        logger.info("User registered: id=%s email=%s", user.id, user.email)
        return user

    async def update_user(self, user_id: str, fields: dict[str, Any]) -> User | None:
        """Apply a partial update; returns the updated user or ``None`` if absent."""
        user_id = parse_object_id(user_id)
        with _translate_errors("update user"):
            user = await self.session.get(User, user_id)
            if user is None:
                return None
            if "email" in fields:
                fields = {**fields, "email": normalize_email(fields["email"])}
                if fields["email"] != user.email:
                    taken = await self.session.scalar(
                        select(User.id).where(User.email == fields["email"])
                    )
                    if taken is not None:
                        raise DuplicateEmailError(fields["email"])
            for key, value in fields.items():
                setattr(user, key, value)
            user.last_updated_on = utcnow()
            try:
                await self.session.flush()
            except IntegrityError as exc:
                await self.session.rollback()
                raise DuplicateEmailError(fields.get("email", "")) from exc

        logger.debug("update_user: modified %s for id %s", sorted(fields), user_id)
        return user

    async def delete_user(self, user_id: str) -> bool:
        user_id = parse_object_id(user_id)
        with _translate_errors("delete user"):
            user = await self.session.get(User, user_id)
            if user is None:
                return False
            await self.session.delete(user)
            await self.session.flush()
        logger.debug("delete_user: deleted id %s", user_id)
        return True


class BugRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all_bugs(
        self,
        *,
        keywords: str | None = None,
        classification: str | None = None,
        status: str | None = None,
        closed: bool | None = None,
        min_age: int | None = None,
        max_age: int | None = None,
        sort_by: str | None = None,
        page_size: Any = DEFAULT_PAGE_SIZE,
        page_number: Any = 1,
    ) -> Page[Bug]:
        conditions = build_bug_filters(
            keywords=keywords,
            classification=classification,
            status=status,
            closed=closed,
            min_age=min_age,
            max_age=max_age,
        )
        page_number, page_size, offset = page_bounds(page_number, page_size)
        stmt = apply_sort(select(Bug).where(*conditions), Bug, get_sort_options(sort_by, "bug"))

        with _translate_errors("get bugs"):
            result = await self.session.execute(stmt.offset(offset).limit(page_size))
            bugs = list(result.scalars().all())
            total = await self.session.scalar(
                select(func.count()).select_from(Bug).where(*conditions)
            )
        total = int(total or 0)
        logger.debug("Found %d bugs (page %d of %d)", total, page_number, total_pages(total, page_size))
        return Page(bugs, total, total_pages(total, page_size), page_number, page_size)

    async def get_bug_by_id(self, bug_id: str) -> Bug | None:
        bug_id = parse_object_id(bug_id)
        with _translate_errors("get bug by ID"):
            return await self.session.get(Bug, bug_id)

    async def create_bug(
        self,
        *,
        title: str,
        description: str,
        steps_to_reproduce: str,
        created_by_user_id: str | None = None,
        created_by_name: str | None = None,
    ) -> Bug:
        bug = Bug(
            id=new_object_id(),
            title=title,
            description=description,
            steps_to_reproduce=steps_to_reproduce,
            classification="unclassified",
            status="open",
            closed=False,
            created_by_user_id=created_by_user_id,
            created_by_name=created_by_name,
            created_on=utcnow(),
        )
        with _translate_errors("create bug"):
            self.session.add(bug)
            await self.session.flush()
        logger.info("Bug created: id=%s title=%r", bug.id, bug.title)
        return bug

    async def _update(self, bug_id: str, values: dict[str, Any]) -> Bug | None:
        values = {**values, "last_updated_on": utcnow()}
        stmt = (
            update(Bug)
            .where(Bug.id == bug_id)
            .values(**values)
            .returning(Bug)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    def _status_values(
        self,
        bug: Bug,
        new_status: str,
        *,
        by_user_id: str | None = None,
        by_name: str | None = None,
    ) -> dict[str, Any]:
        validate_status_transition(bug.status, new_status)
        if new_status == bug.status:
            return {}
        values: dict[str, Any] = {"status": new_status, "closed": new_status == "closed"}
        if new_status == "closed":
            values.update(closed_on=utcnow(), closed_by_user_id=by_user_id, closed_by_name=by_name)
        elif bug.status == "closed":
            values.update(closed_on=None, closed_by_user_id=None, closed_by_name=None)
        return values

    async def update_bug(self, bug_id: str, fields: dict[str, Any]) -> Bug | None:
        """Partial update of the descriptive fields and, via the transition table, status."""
        bug_id = parse_object_id(bug_id)
        with _translate_errors("update bug"):
            bug = await self.session.get(Bug, bug_id)
            if bug is None:
                return None
            values = {k: v for k, v in fields.items() if k != "status"}
            if fields.get("status") is not None:
                values.update(self._status_values(bug, fields["status"]))
            if not values:
                return bug
            return await self._update(bug_id, values)

    async def classify_bug(self, bug_id: str, classification: str) -> Bug | None:
        bug_id = parse_object_id(bug_id)
        with _translate_errors("classify bug"):
            return await self._update(
                bug_id, {"classification": classification, "classified_on": utcnow()}
            )

    async def assign_bug(self, bug_id: str, assignee: User) -> Bug | None:
        bug_id = parse_object_id(bug_id)
        with _translate_errors("assign bug"):
            return await self._update(
                bug_id,
                {
                    "assigned_to_user_id": assignee.id,
                    "assigned_to_name": assignee.full_name,
                    "assigned_on": utcnow(),
                },
            )

    async def close_bug(
        self,
        bug_id: str,
        closed: bool,
        *,
        by_user_id: str | None = None,
        by_name: str | None = None,
    ) -> Bug | None:
        """Close (``closed=True``) or reopen a bug through the transition table."""
        bug_id = parse_object_id(bug_id)
        with _translate_errors("close bug"):
            bug = await self.session.get(Bug, bug_id)
            if bug is None:
                return None
            values = self._status_values(
                bug, "closed" if closed else "open", by_user_id=by_user_id, by_name=by_name
            )
            if not values:
                return bug
            return await self._update(bug_id, values)


class CommentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_comments_for_bug(self, bug_id: str) -> list[Comment]:
        bug_id = parse_object_id(bug_id)
        with _translate_errors("get comments"):
            result = await self.session.execute(
                select(Comment).where(Comment.bug_id == bug_id).order_by(Comment.created_on)
            )
            return list(result.scalars().all())

    async def get_comment(self, bug_id: str, comment_id: str) -> Comment | None:
        bug_id = parse_object_id(bug_id)
        comment_id = parse_object_id(comment_id)
        with _translate_errors("get comment"):
            result = await self.session.execute(
                select(Comment).where(Comment.id == comment_id, Comment.bug_id == bug_id)
            )
            return result.scalar_one_or_none()

    async def add_comment(
        self,
        bug_id: str,
        text: str,
        *,
        author_id: str | None = None,
        author_name: str | None = None,
    ) -> Comment:
        comment = Comment(
            id=new_object_id(),
            bug_id=parse_object_id(bug_id),
            text=text,
            author_id=author_id,
            author_name=author_name,
            created_on=utcnow(),
        )
        with _translate_errors("add comment"):
            self.session.add(comment)
            await self.session.flush()
        return comment



class EditRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def save_audit_log(
        self,
        col: str,
        op: str,
        target: dict[str, Any],
        *,
        update: dict[str, Any] | None = None,
        auth: dict[str, Any] | None = None,
    ) -> Edit:
        """Add the audit entry and commit it with the pending mutation it records."""
        entry = Edit(
            id=new_object_id(),
            timestamp=utcnow(),
            col=col,
            op=op,
            target=jsonable_encoder(target),
            target_id=target.get("_id"),
            update=jsonable_encoder(update) if update is not None else None,
            auth=jsonable_encoder(auth) if auth is not None else None,
        )
        with _translate_errors("save audit log"):
            self.session.add(entry)
            await self.session.commit()
        return entry

    async def get_edits_for_target(self, target_id: str) -> list[Edit]:
        with _translate_errors("get audit log"):
            result = await self.session.execute(
                select(Edit).where(Edit.target_id == target_id).order_by(Edit.timestamp)
            )
            return list(result.scalars().all())


class RoleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_role_by_name(self, name: str) -> Role:
        """Token issuance depends on this failing for unknown roles."""
        with _translate_errors("find role"):
            role = await self.session.scalar(select(Role).where(Role.name == name))
        if role is None:
            raise NotFoundError(f"Role {name} not found", role=name)
        return role

    async def list_roles(self) -> list[Role]:
        with _translate_errors("list roles"):
            result = await self.session.execute(select(Role).order_by(Role.name))
            return list(result.scalars().all())

    async def upsert_role(self, name: str, permissions: dict[str, bool]) -> Role:
        with _translate_errors("save role"):
            role = await self.session.scalar(select(Role).where(Role.name == name))
            if role is None:
                role = Role(id=new_object_id(), name=name, permissions=permissions)
                self.session.add(role)
            else:
                role.permissions = permissions
            await self.session.commit()
        return role
