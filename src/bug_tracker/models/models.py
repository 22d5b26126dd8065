from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from bug_tracker.db.object_id import OBJECT_ID_LENGTH, new_object_id

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


def _id_column() -> Mapped[str]:
    return mapped_column(String(OBJECT_ID_LENGTH), primary_key=True, default=new_object_id)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = _id_column()
    # Stored trimmed and lowercased; the unique index is what enforces one account per email.
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password: Mapped[str] = mapped_column(String(200), nullable=False)  # bcrypt hash or legacy plain text
    given_name: Mapped[str] = mapped_column(String(100), nullable=False)
    family_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="User")
    created_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_updated_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_users_role", "role"),
        Index("idx_users_created_on", "created_on"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.given_name} {self.family_name}"


class Bug(Base):
    __tablename__ = "bugs"

    id: Mapped[str] = _id_column()
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    steps_to_reproduce: Mapped[str] = mapped_column(Text, nullable=False)
    classification: Mapped[str] = mapped_column(String(20), nullable=False, default="unclassified")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    closed_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_by_user_id: Mapped[str | None] = mapped_column(String(OBJECT_ID_LENGTH))
    closed_by_name: Mapped[str | None] = mapped_column(String(200))
    assigned_to_user_id: Mapped[str | None] = mapped_column(String(OBJECT_ID_LENGTH))
    assigned_to_name: Mapped[str | None] = mapped_column(String(200))
    assigned_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by_user_id: Mapped[str | None] = mapped_column(String(OBJECT_ID_LENGTH))
    created_by_name: Mapped[str | None] = mapped_column(String(200))
    classified_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_updated_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    comments: Mapped[list["Comment"]] = relationship(back_populates="bug", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_bugs_status", "status"),
        Index("idx_bugs_classification", "classification"),
        Index("idx_bugs_created_on", "created_on"),
    )


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[str] = _id_column()
    bug_id: Mapped[str] = mapped_column(
        String(OBJECT_ID_LENGTH), ForeignKey("bugs.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str | None] = mapped_column(String(OBJECT_ID_LENGTH))
    author_name: Mapped[str | None] = mapped_column(String(200))
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    bug: Mapped["Bug"] = relationship(back_populates="comments")

    __table_args__ = (
        Index("idx_comments_bug_id", "bug_id"),
    )


class Edit(Base):
    """Append-only audit record; rows are never updated or deleted."""

    __tablename__ = "edits"

    id: Mapped[str] = _id_column()
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    col: Mapped[str] = mapped_column(String(30), nullable=False)  # users | bugs | comments
    op: Mapped[str] = mapped_column(String(30), nullable=False)   # insert | update | delete | close | ...
    target: Mapped[dict] = mapped_column(JSONType, nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(OBJECT_ID_LENGTH))
    update: Mapped[dict | None] = mapped_column(JSONType)
    auth: Mapped[dict | None] = mapped_column(JSONType)

    __table_args__ = (
        Index("idx_edits_target_id", "target_id"),
        Index("idx_edits_col_op", "col", "op"),
    )


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[str] = _id_column()
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    permissions: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
