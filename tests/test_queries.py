from datetime import datetime, timedelta, timezone

import pytest

from bug_tracker.db.queries import (
    created_on_window,
    get_sort_options,
    page_bounds,
    parse_age,
    parse_positive_int,
    total_pages,
)


class TestGetSortOptions:
    def test_bug_newest(self) -> None:
        assert get_sort_options("newest", "bug") == {"createdOn": -1}

    def test_bug_title(self) -> None:
        assert get_sort_options("title", "bug") == {"title": 1, "createdOn": -1}

    def test_bug_default(self) -> None:
        assert get_sort_options(None, "bug") == {"createdOn": -1}
        assert get_sort_options("whatever", "bug") == {"createdOn": -1}

    def test_user_unrecognized(self) -> None:
        assert get_sort_options("shoe-size", "user") == {"givenName": 1}

    def test_user_given_name_keeps_priority_order(self) -> None:
        options = get_sort_options("givenName", "user")
        assert list(options.items()) == [("givenName", 1), ("familyName", 1), ("createdOn", 1)]

    def test_returns_a_copy(self) -> None:
        get_sort_options("newest", "user")["createdOn"] = 1
        assert get_sort_options("newest", "user") == {"createdOn": -1}

    def test_unknown_kind(self) -> None:
        with pytest.raises(ValueError):
            get_sort_options("newest", "comment")  # type: ignore[arg-type]


class TestParsing:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("3", 3), (7, 7), (None, 5), ("", 5), ("abc", 5), ("0", 5), ("-2", 5), (True, 5)],
    )
    def test_parse_positive_int(self, value: object, expected: int) -> None:
        assert parse_positive_int(value, 5) == expected

    def test_parse_age(self) -> None:
        assert parse_age("10") == 10
        assert parse_age("0") is None
        assert parse_age(None) is None

    def test_page_bounds(self) -> None:
        assert page_bounds("2", "5") == (2, 5, 5)
        assert page_bounds(None, None) == (1, 5, 0)
        assert page_bounds("x", "-1", default_size=20) == (1, 20, 0)

    def test_total_pages(self) -> None:
        assert total_pages(0, 5) == 0
        assert total_pages(5, 5) == 1
        assert total_pages(11, 5) == 3


class TestCreatedOnWindow:
    today = datetime(2026, 3, 10, tzinfo=timezone.utc)

    def test_min_age_is_upper_bound(self) -> None:
        window = created_on_window(3, None, self.today)
        assert window == {"lte": self.today - timedelta(days=3)}

    def test_max_age_is_lower_bound(self) -> None:
        window = created_on_window(None, 7, self.today)
        assert window == {"gte": self.today - timedelta(days=7)}

    def test_both(self) -> None:
        window = created_on_window(1, 30, self.today)
        assert window["lte"] > window["gte"]

    def test_non_positive_ages_ignored(self) -> None:
        assert created_on_window(0, -4, self.today) == {}
