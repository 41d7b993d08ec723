import pytest

from openclaw.format import (
    clamp_text,
    format_ago,
    format_duration_ms,
    format_list,
    format_ms,
    parse_list,
    to_number,
    truncate_text,
)
from tests.conftest import START_MS

SEC = 1000
MIN = 60 * SEC
HOUR = 60 * MIN


def test_format_ms():
    assert format_ms(None) == "n/a"
    assert format_ms(START_MS, tz="UTC") == "2024-01-02 03:04:05"
    assert format_ms(START_MS, tz="Asia/Shanghai") == "2024-01-02 11:04:05"


@pytest.mark.parametrize("offset,expected", [
    (-42 * SEC, "42s ago"),
    (10 * SEC, "just now"),
    (-5 * MIN, "5m ago"),
    (3 * HOUR, "3h from now"),
    (-47 * HOUR, "47h ago"),
    (-48 * HOUR, "2d ago"),
    (-3 * 24 * HOUR, "3d ago"),
])
def test_format_ago(clock, offset, expected):
    assert format_ago(clock.now + offset, clock=clock) == expected


def test_format_ago_missing(clock):
    assert format_ago(None, clock=clock) == "n/a"


@pytest.mark.parametrize("ms,expected", [
    (None, "n/a"),
    (999, "999ms"),
    (1500, "2s"),
    (59 * SEC, "59s"),
    (90 * SEC, "2m"),
    (3 * HOUR, "3h"),
    (72 * HOUR, "3d"),
])
def test_format_duration_ms(ms, expected):
    assert format_duration_ms(ms) == expected


def test_format_list():
    assert format_list([]) == "none"
    assert format_list(None) == "none"
    assert format_list(["a", "", " ", None, "b"]) == "a, b"


def test_clamp_and_truncate():
    assert clamp_text("short") == "short"
    assert clamp_text("abcdef", 4) == "abc…"
    assert truncate_text("abcdef", 3) == ("abc", True, 6)
    assert truncate_text("abc", 3) == ("abc", False, 3)


@pytest.mark.parametrize("text,expected", [
    ("", 0),
    (" 42 ", 42),
    ("2.5", 2.5),
    ("1e3", 1000),
    ("abc", -1),
    ("inf", -1),
])
def test_to_number(text, expected):
    result = to_number(text, fallback=-1)
    assert result == expected
    assert type(result) is type(expected)


def test_parse_list():
    assert parse_list("a, b\nc,,\n") == ["a", "b", "c"]
    assert parse_list("") == []
