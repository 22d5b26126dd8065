import pytest

from bug_tracker.db.object_id import is_valid_object_id, new_object_id, parse_object_id
from bug_tracker.errors import InvalidIdError


class TestParseObjectId:
    @pytest.mark.parametrize(
        "value",
        ["507f1f77bcf86cd799439011", "000000000000000000000000", "ffffffffffffffffffffffff"],
    )
    def test_accepts_24_hex_chars(self, value: str) -> None:
        assert parse_object_id(value) == value

    def test_normalizes_to_lowercase(self) -> None:
        assert parse_object_id("507F1F77BCF86CD799439011") == "507f1f77bcf86cd799439011"

    @pytest.mark.parametrize(
        "value",
        [
            None,
            "",
            123,
            "507f1f77bcf86cd79943901",  # 23 chars
            "507f1f77bcf86cd7994390111",  # 25 chars
            "507f1f77bcf86cd79943901z",
            "507f1f77bcf86cd79943901\n",
            " 507f1f77bcf86cd79943901",
        ],
    )
    def test_rejects_malformed(self, value: object) -> None:
        with pytest.raises(InvalidIdError):
            parse_object_id(value)

    def test_error_is_a_400(self) -> None:
        with pytest.raises(InvalidIdError) as excinfo:
            parse_object_id("nope")
        assert excinfo.value.status_code == 400


class TestNewObjectId:
    def test_ids_are_valid_and_unique(self) -> None:
        ids = {new_object_id() for _ in range(1000)}
        assert len(ids) == 1000
        assert all(is_valid_object_id(i) for i in ids)

    def test_ids_minted_in_order_sort_in_order(self) -> None:
        first, second = new_object_id(), new_object_id()
        assert first[:8] <= second[:8]
