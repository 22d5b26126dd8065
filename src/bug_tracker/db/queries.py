"""Sort, filter and pagination building for the user and bug listings."""

import math
from datetime import datetime, time, timedelta, timezone
from typing import Any, Literal

from sqlalchemy import ColumnElement, Select, asc, desc, or_

from bug_tracker.models.models import Bug, User

EntityKind = Literal["user", "bug"]

DEFAULT_PAGE_SIZE = 5

# sortBy keyword -> ordered (field, direction) pairs; 1 ascending, -1 descending.
_USER_SORTS: dict[str, dict[str, int]] = {
    "givenName": {"givenName": 1, "familyName": 1, "createdOn": 1},
    "familyName": {"familyName": 1, "givenName": 1, "createdOn": 1},
    "role": {"role": 1, "givenName": 1, "familyName": 1, "createdOn": 1},
    "newest": {"createdOn": -1},
    "oldest": {"createdOn": 1},
}
_USER_DEFAULT_SORT = {"givenName": 1}

_BUG_SORTS: dict[str, dict[str, int]] = {
    "title": {"title": 1, "createdOn": -1},
    "classification": {"classification": 1, "createdOn": -1},
    "assignedToName": {"assignedToName": 1, "createdOn": -1},
    "createdByName": {"createdByName": 1, "createdOn": -1},
    "newest": {"createdOn": -1},
    "oldest": {"createdOn": 1},
}
_BUG_DEFAULT_SORT = {"createdOn": -1}

SORT_FIELDS: dict[type, dict[str, Any]] = {
    User: {
        "givenName": User.given_name,
        "familyName": User.family_name,
        "role": User.role,
        "createdOn": User.created_on,
    },
    Bug: {
        "title": Bug.title,
        "classification": Bug.classification,
        "assignedToName": Bug.assigned_to_name,
        "createdByName": Bug.created_by_name,
        "createdOn": Bug.created_on,
    },
}


def get_sort_options(sort_by: str | None, kind: EntityKind) -> dict[str, int]:
    if kind == "user":
        table, default = _USER_SORTS, _USER_DEFAULT_SORT
    elif kind == "bug":
        table, default = _BUG_SORTS, _BUG_DEFAULT_SORT
    else:
        raise ValueError(f"Unknown entity kind {kind!r}")
    return dict(table.get(sort_by or "", default))


def apply_sort(stmt: Select, model: type, options: dict[str, int]) -> Select:
    fields = SORT_FIELDS[model]
    for name, direction in options.items():
        column = fields[name]
        stmt = stmt.order_by(desc(column) if direction < 0 else asc(column))
    return stmt


def parse_positive_int(value: Any, default: int) -> int:
    """Parse ``value`` as an int, falling back to ``default`` unless it is >= 1."""
    if isinstance(value, bool):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def parse_age(value: Any) -> int | None:
    """Day counts from the query string; anything non-positive means "no bound"."""
    parsed = parse_positive_int(value, 0)
    return parsed or None


def start_of_today() -> datetime:
    return datetime.combine(datetime.now(timezone.utc).date(), time.min, tzinfo=timezone.utc)


def created_on_window(
    min_age: int | None,
    max_age: int | None,
    today: datetime | None = None,
) -> dict[str, datetime]:
    """Creation-date bounds relative to midnight today.

    ``min_age`` produces the upper bound and ``max_age`` the lower bound.
    Listings rely on this orientation; keep it.
    """
    today = today or start_of_today()
    window: dict[str, datetime] = {}
    if min_age and min_age > 0:
        window["lte"] = today - timedelta(days=min_age)
    if max_age and max_age > 0:
        window["gte"] = today - timedelta(days=max_age)
    return window


def _contains(column, keywords: str) -> ColumnElement[bool]:
    escaped = keywords.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return column.ilike(f"%{escaped}%", escape="\\")


def _window_conditions(column, window: dict[str, datetime]) -> list[ColumnElement[bool]]:
    conditions = []
    if "lte" in window:
        conditions.append(column <= window["lte"])
    if "gte" in window:
        conditions.append(column >= window["gte"])
    return conditions


def build_user_filters(
    *,
    keywords: str | None = None,
    role: str | None = None,
    min_age: int | None = None,
    max_age: int | None = None,
    today: datetime | None = None,
) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if keywords:
        conditions.append(
            or_(
                _contains(User.given_name, keywords),
                _contains(User.family_name, keywords),
                _contains(User.email, keywords),
            )
        )
    if role:
        conditions.append(User.role == role)
    conditions.extend(
        _window_conditions(User.created_on, created_on_window(min_age, max_age, today))
    )
    return conditions


def build_bug_filters(
    *,
    keywords: str | None = None,
    classification: str | None = None,
    status: str | None = None,
    closed: bool | None = None,
    min_age: int | None = None,
    max_age: int | None = None,
    today: datetime | None = None,
) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if keywords:
        conditions.append(
            or_(
                _contains(Bug.title, keywords),
                _contains(Bug.description, keywords),
                _contains(Bug.steps_to_reproduce, keywords),
            )
        )
    if classification:
        conditions.append(Bug.classification == classification)
    if status:
        conditions.append(Bug.status == status)
    if closed is not None:
        conditions.append(Bug.closed.is_(closed))
    conditions.extend(
        _window_conditions(Bug.created_on, created_on_window(min_age, max_age, today))
    )
    return conditions


def page_bounds(page_number: Any, page_size: Any, default_size: int = DEFAULT_PAGE_SIZE) -> tuple[int, int, int]:
    """Return (page_number, page_size, offset) with both clamped to positive ints."""
    number = parse_positive_int(page_number, 1)
    size = parse_positive_int(page_size, default_size)
    return number, size, (number - 1) * size


def total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size)
