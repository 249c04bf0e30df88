import pytest

from culture_scanner.config import REFRESH_PROFILES, coerce_interval, coerce_limit, coerce_weight


@pytest.mark.parametrize("value,expected", [
    (None, 1.0), ("", 1.0), ("2.5", 2.5), (3, 3.0), ("0", 1.0), ("-1", 1.0),
    ("abc", 1.0), ("nan", 1.0), ("inf", 1.0), (True, 1.0),
])
def test_coerce_weight(value, expected):
    assert coerce_weight(value) == expected


@pytest.mark.parametrize("value,expected", [
    (None, 50), ("10", 10), (7, 7), ("10.0", 10), ("2.5", 50), ("0", 50), (-4, 50), ("x", 50),
])
def test_coerce_limit(value, expected):
    assert coerce_limit(value) == expected


def test_coerce_interval_accepts_profiles_and_seconds():
    assert coerce_interval("dense", 60.0) == REFRESH_PROFILES["dense"]
    assert coerce_interval("SUMMARY", 60.0) == REFRESH_PROFILES["summary"]
    assert coerce_interval("30", 60.0) == 30.0
    assert coerce_interval("weekly", 60.0) == 60.0


def test_invalid_value_with_none_default_signals_rejection():
    assert coerce_weight("abc", None) is None
    assert coerce_limit(0, None) is None
