import pytest

from fc2rec.utils import parse_duration


def test_parse_duration():
    assert parse_duration(10) == 10
    assert parse_duration("2.5") == 2.5
    assert parse_duration("5s") == 5
    assert parse_duration("10m") == 600
    assert parse_duration("48h") == 48 * 3600
    assert parse_duration("1h30m") == 5400
    assert parse_duration("500ms") == 0.5


def test_parse_duration_invalid():
    for value in ["", "abc", "5x", "5s foo", "h"]:
        with pytest.raises(ValueError):
            parse_duration(value)
