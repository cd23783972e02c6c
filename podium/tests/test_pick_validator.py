"""
Pick validation and identifier conversion tests.
"""
from types import SimpleNamespace

import pytest

from podium.core.ids import to_id, to_optional_id
from podium.errors import ErrorCode, ValidationError
from podium.services.pick_validator import validate_picks


SEASON_TEAMS = [1, 2, 3, 4, 5]


class TestToId:

    @pytest.mark.parametrize("value,expected", [
        (7, 7),
        ("7", 7),
        (" 12 ", 12),
        ({"id": 3}, 3),
        (SimpleNamespace(id=9), 9),
    ])
    def test_accepted_forms(self, value, expected):
        assert to_id(value, "team_id") == expected

    @pytest.mark.parametrize("value", [None, "", "abc", "\u00b2", "\u0663", 0, -4, True, 1.5, {"name": "x"}])
    def test_rejected_forms(self, value):
        with pytest.raises(ValidationError) as exc:
            to_id(value, "team_id")
        assert exc.value.code == ErrorCode.INVALID_ID
        assert exc.value.details["field"] == "team_id"

    def test_optional(self):
        assert to_optional_id(None) is None
        assert to_optional_id("") is None
        assert to_optional_id("5") == 5


class TestValidatePicks:

    def test_valid_picks(self):
        result = validate_picks({"p1": 1, "p2": "2", "p3": 3, "last_place": 4}, SEASON_TEAMS)
        assert result == {"p1": 1, "p2": 2, "p3": 3, "last_place": 4, "tie_breaker": None}

    def test_camel_case_last_place(self):
        result = validate_picks({"p1": 1, "p2": 2, "p3": 3, "lastPlace": 5}, SEASON_TEAMS)
        assert result["last_place"] == 5

    def test_object_picks(self):
        picks = SimpleNamespace(p1=1, p2=2, p3=3, last_place=4, tie_breaker=88.5)
        assert validate_picks(picks, SEASON_TEAMS)["tie_breaker"] == 88.5

    def test_invalid_id_names_field(self):
        with pytest.raises(ValidationError) as exc:
            validate_picks({"p1": 1, "p2": "x", "p3": 3, "last_place": 4}, SEASON_TEAMS)
        assert exc.value.details["field"] == "p2"

    def test_superscript_digit_is_invalid_id(self):
        with pytest.raises(ValidationError) as exc:
            validate_picks({"p1": "²", "p2": 2, "p3": 3, "last_place": 4}, SEASON_TEAMS)
        assert exc.value.code == ErrorCode.INVALID_ID
        assert exc.value.details["field"] == "p1"

    def test_missing_field(self):
        with pytest.raises(ValidationError) as exc:
            validate_picks({"p1": 1, "p2": 2, "p3": 3}, SEASON_TEAMS)
        assert exc.value.details["field"] == "last_place"

    def test_duplicate_team(self):
        with pytest.raises(ValidationError) as exc:
            validate_picks({"p1": 1, "p2": 2, "p3": 3, "last_place": 1}, SEASON_TEAMS)
        assert exc.value.code == ErrorCode.DUPLICATE_PICK
        assert exc.value.details["fields"] == ["p1", "last_place"]

    def test_team_outside_season(self):
        with pytest.raises(ValidationError) as exc:
            validate_picks({"p1": 1, "p2": 2, "p3": 99, "last_place": 4}, SEASON_TEAMS)
        assert exc.value.code == ErrorCode.TEAM_NOT_IN_SEASON
        assert exc.value.details["field"] == "p3"

    @pytest.mark.parametrize("tie_breaker", [float("inf"), float("nan"), "fast", True])
    def test_tie_breaker_must_be_finite(self, tie_breaker):
        picks = {"p1": 1, "p2": 2, "p3": 3, "last_place": 4, "tie_breaker": tie_breaker}
        with pytest.raises(ValidationError) as exc:
            validate_picks(picks, SEASON_TEAMS)
        assert exc.value.details["field"] == "tie_breaker"

    def test_none_picks(self):
        with pytest.raises(ValidationError):
            validate_picks(None, SEASON_TEAMS)

    def test_validation_error_is_http_400(self):
        with pytest.raises(ValidationError) as exc:
            validate_picks({"p1": 1, "p2": 1, "p3": 3, "last_place": 4}, SEASON_TEAMS)
        assert exc.value.status_code == 400
