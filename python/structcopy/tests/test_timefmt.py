import datetime
import zoneinfo

import pytest

from structcopy import timefmt
from structcopy.timefmt import (
    format_datetime,
    in_time_zone,
    parse_datetime,
    resolve_time_zone,
)


def _has_time_zone(name: str) -> bool:
    try:
        zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


requires_shanghai_tz = pytest.mark.skipif(
    not _has_time_zone("Asia/Shanghai"),
    reason="time zone database without Asia/Shanghai",
)

UTC = datetime.timezone.utc
PLUS_8 = datetime.timezone(datetime.timedelta(hours=8))

# Tuesday.
SAMPLE = datetime.datetime(2024, 3, 5, 12, 30, 45, 123456, tzinfo=UTC)


def test_format_default_layout() -> None:
    assert format_datetime(SAMPLE, "2006-01-02 15:04:05") == "2024-03-05 12:30:45"


def test_format_names() -> None:
    assert (
        format_datetime(SAMPLE, "Mon Jan _2 15:04:05 2006")
        == "Tue Mar  5 12:30:45 2024"
    )
    assert format_datetime(SAMPLE, "Monday, 2 January 06") == "Tuesday, 5 March 24"


def test_format_twelve_hour_clock() -> None:
    assert format_datetime(SAMPLE.replace(hour=15, minute=4), "3:04PM") == "3:04PM"
    assert format_datetime(SAMPLE.replace(hour=0, minute=5), "03:04pm") == "12:05am"


def test_format_fractions() -> None:
    assert format_datetime(SAMPLE, "05.000") == "45.123"
    assert format_datetime(SAMPLE, "05,000000") == "45,123456"
    assert format_datetime(SAMPLE.replace(microsecond=120000), "05.999") == "45.12"
    assert format_datetime(SAMPLE.replace(microsecond=0), "05.999") == "45"


def test_format_zones() -> None:
    assert format_datetime(SAMPLE, "Z07:00") == "Z"
    assert format_datetime(SAMPLE, "-07:00") == "+00:00"
    assert format_datetime(SAMPLE, "MST") == "UTC"

    east = SAMPLE.astimezone(PLUS_8)
    assert format_datetime(east, "Z07:00") == "+08:00"
    assert format_datetime(east, "-0700") == "+0800"
    assert format_datetime(east, "-07") == "+08"
    assert format_datetime(east, "MST") == "+0800"


def test_format_literal_underscore_before_year() -> None:
    assert format_datetime(SAMPLE, "x_2006") == "x_2024"


def test_parse_default_layout() -> None:
    assert parse_datetime("2024-03-05 12:30:45", "2006-01-02 15:04:05") == (
        datetime.datetime(2024, 3, 5, 12, 30, 45, tzinfo=UTC)
    )


def test_parse_in_time_zone() -> None:
    parsed = parse_datetime("2024-03-05 12:30:45", "2006-01-02 15:04:05", PLUS_8)
    assert parsed.utcoffset() == datetime.timedelta(hours=8)
    assert parsed == datetime.datetime(2024, 3, 5, 4, 30, 45, tzinfo=UTC)


def test_parse_fraction_after_seconds() -> None:
    parsed = parse_datetime("2024-03-05 12:30:45.5", "2006-01-02 15:04:05")
    assert parsed.microsecond == 500000


def test_parse_explicit_offset() -> None:
    layout = "2006-01-02T15:04:05Z07:00"
    parsed = parse_datetime("2024-03-05T12:30:45+08:00", layout)
    assert parsed == datetime.datetime(2024, 3, 5, 4, 30, 45, tzinfo=UTC)
    assert parsed.utcoffset() == datetime.timedelta(hours=8)

    parsed = parse_datetime("2024-03-05T12:30:45Z", layout)
    assert parsed == datetime.datetime(2024, 3, 5, 12, 30, 45, tzinfo=UTC)


def test_parse_names_and_twelve_hour_clock() -> None:
    parsed = parse_datetime("05 mar 24 3:04PM", "02 Jan 06 3:04PM")
    assert parsed == datetime.datetime(2024, 3, 5, 15, 4, tzinfo=UTC)

    parsed = parse_datetime("12:00AM", "3:04PM")
    assert (parsed.hour, parsed.minute) == (0, 0)


def test_parse_two_digit_year_pivot() -> None:
    assert parse_datetime("68", "06").year == 2068
    assert parse_datetime("69", "06").year == 1969


def test_parse_space_padded_day() -> None:
    parsed = parse_datetime("Mar  5 2024", "Jan _2 2006")
    assert parsed.date() == datetime.date(2024, 3, 5)


@pytest.mark.parametrize(
    "text",
    [
        "garbage",
        "2024-03-05",
        "2024-03-05 12:30:45 trailing",
        "2024-13-05 12:30:45",
        "2024-02-30 12:30:45",
    ],
)
def test_parse_invalid(text: str) -> None:
    with pytest.raises(ValueError):
        parse_datetime(text, "2006-01-02 15:04:05")


def test_resolve_time_zone() -> None:
    assert resolve_time_zone("") is UTC
    assert resolve_time_zone("UTC") is UTC
    assert isinstance(resolve_time_zone("Local"), datetime.tzinfo)


def test_resolve_unknown_time_zone_falls_back_to_utc(
    caplog: pytest.LogCaptureFixture,
) -> None:
    with caplog.at_level("WARNING", logger="structcopy.timefmt"):
        assert resolve_time_zone("Nowhere/Unknown_Place") is UTC
    assert "Unknown time zone" in caplog.text


@requires_shanghai_tz
def test_resolve_named_time_zone() -> None:
    tz = resolve_time_zone("Asia/Shanghai")
    assert SAMPLE.astimezone(tz).utcoffset() == datetime.timedelta(hours=8)


def test_in_time_zone_treats_naive_as_utc() -> None:
    converted = in_time_zone(datetime.datetime(2024, 3, 5, 12), PLUS_8)
    assert converted.hour == 20
    assert converted.utcoffset() == datetime.timedelta(hours=8)


def test_in_time_zone_keeps_offset_outside_year_range() -> None:
    earliest = datetime.datetime(1, 1, 1, tzinfo=UTC)
    west = datetime.timezone(datetime.timedelta(hours=-5))
    converted = in_time_zone(earliest, west)
    assert converted == earliest
    assert format_datetime(converted, "2006-01-02 15:04:05") == "0001-01-01 00:00:00"


def test_local_time_zone_is_looked_up_each_time(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(timefmt, "_local_time_zone", lambda: PLUS_8)
    assert resolve_time_zone("Local") is PLUS_8

    minus_3 = datetime.timezone(datetime.timedelta(hours=-3))
    monkeypatch.setattr(timefmt, "_local_time_zone", lambda: minus_3)
    assert resolve_time_zone("Local") is minus_3
