import pytest

from realsingles.services.filters import FILTER_COLUMNS, default_filters, validate_filters


def test_valid_filters_return_full_row():
    out = validate_filters({"minAge": "25", "max_age": 35, "body_types": ["athletic"], "smoking": "any"})
    assert set(out) == set(FILTER_COLUMNS)
    assert out["min_age"] == 25
    assert out["max_age"] == 35
    assert out["body_types"] == ["athletic"]
    assert out["smoking"] == "any"
    assert out["religions"] == []
    assert out["max_distance_miles"] is None


@pytest.mark.parametrize(
    "payload,message",
    [
        ({"min_age": 17}, "between 18 and 99"),
        ({"min_age": 40, "max_age": 30}, "min_age cannot be greater"),
        ({"min_height": 70, "max_height": 60}, "min_height cannot be greater"),
        ({"max_height": 100}, "between 48 and 96"),
        ({"max_distance_miles": 0}, "between 1 and 500"),
        ({"max_distance_miles": "far"}, "whole number"),
        ({"body_types": ["giant"]}, "invalid values"),
        ({"drinking": "always"}, "must be one of"),
    ],
)
def test_invalid_filters(payload, message):
    with pytest.raises(ValueError, match=message):
        validate_filters(payload)


def test_default_filters_are_empty():
    defaults = default_filters()
    assert defaults["min_age"] is None
    assert defaults["zodiac_signs"] == []
