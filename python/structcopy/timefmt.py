"""
Format and parse datetimes with layouts written against the reference time.

A layout is an example: it shows how the reference time
`Mon Jan 2 15:04:05 MST 2006` (i.e. `2006-01-02 15:04:05 -0700`) would be
written. Recognized elements:

    year        2006 06
    month       January Jan 01 1
    day         02 2 _2
    weekday     Monday Mon
    hour        15 03 3
    minute      04 4
    second      05 5
    fraction    .000 .999 ,000 ,999 (any count of 0s or 9s)
    AM/PM       PM pm
    zone        MST Z07:00 Z0700 Z07 -07:00 -0700 -07

Everything else is literal text.
"""

import datetime
import functools
import logging
import re
import zoneinfo
from typing import NamedTuple

_logger = logging.getLogger(__name__)

_LONG_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
# In `datetime.weekday()` order.
_LONG_WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

_DIGITS = "0123456789"


class _Element(NamedTuple):
    kind: str
    digits: int = 0
    sep: str = ""


_Token = str | _Element

# Checked in order at each position, longer elements first.
_ELEMENTS: tuple[tuple[str, str], ...] = (
    ("January", "long_month"),
    ("Jan", "month"),
    ("Monday", "long_weekday"),
    ("Mon", "weekday"),
    ("MST", "zone_name"),
    ("01", "zero_month"),
    ("02", "zero_day"),
    ("03", "zero_hour12"),
    ("04", "zero_minute"),
    ("05", "zero_second"),
    ("06", "year"),
    ("15", "hour"),
    ("1", "num_month"),
    ("2006", "long_year"),
    ("2", "day"),
    ("_2", "under_day"),
    ("3", "hour12"),
    ("4", "minute"),
    ("5", "second"),
    ("PM", "PM"),
    ("pm", "pm"),
    ("-07:00", "num_colon_tz"),
    ("-0700", "num_tz"),
    ("-07", "num_short_tz"),
    ("Z07:00", "iso_colon_tz"),
    ("Z0700", "iso_tz"),
    ("Z07", "iso_short_tz"),
)

_FRACTION_KINDS = ("frac0", "frac9")
_SECOND_KINDS = ("second", "zero_second")


def _match_element(layout: str, i: int) -> tuple[_Element | None, int]:
    if layout.startswith("_2006", i):
        # A literal "_" followed by the long year.
        return None, 1

    ch = layout[i]
    if ch in ".," and i + 1 < len(layout) and layout[i + 1] in "09":
        digit = layout[i + 1]
        j = i + 1
        while j < len(layout) and layout[j] == digit:
            j += 1
        if j >= len(layout) or layout[j] not in _DIGITS:
            kind = "frac0" if digit == "0" else "frac9"
            return _Element(kind, digits=j - i - 1, sep=ch), j - i

    for text, kind in _ELEMENTS:
        if layout.startswith(text, i):
            return _Element(kind), len(text)
    return None, 1


@functools.lru_cache(maxsize=64)
def _tokenize(layout: str) -> tuple[_Token, ...]:
    tokens: list[_Token] = []
    literal: list[str] = []
    i = 0
    while i < len(layout):
        element, size = _match_element(layout, i)
        if element is None:
            literal.append(layout[i : i + size])
        else:
            if literal:
                tokens.append("".join(literal))
                literal.clear()
            tokens.append(element)
        i += size
    if literal:
        tokens.append("".join(literal))
    return tuple(tokens)


def _format_offset(value: datetime.datetime, kind: str) -> str:
    offset = value.utcoffset() or datetime.timedelta(0)
    if kind.startswith("iso") and not offset:
        return "Z"
    total_minutes = int(offset.total_seconds() // 60)
    sign = "-" if total_minutes < 0 else "+"
    hours, minutes = divmod(abs(total_minutes), 60)
    if kind in ("num_short_tz", "iso_short_tz"):
        return f"{sign}{hours:02d}"
    if kind in ("num_colon_tz", "iso_colon_tz"):
        return f"{sign}{hours:02d}:{minutes:02d}"
    return f"{sign}{hours:02d}{minutes:02d}"


def _format_element(value: datetime.datetime, element: _Element) -> str:
    kind = element.kind
    hour12 = value.hour % 12 or 12

    if kind == "long_year":
        return f"{value.year:04d}"
    elif kind == "year":
        return f"{value.year % 100:02d}"
    elif kind == "long_month":
        return _LONG_MONTH_NAMES[value.month - 1]
    elif kind == "month":
        return _LONG_MONTH_NAMES[value.month - 1][:3]
    elif kind == "num_month":
        return str(value.month)
    elif kind == "zero_month":
        return f"{value.month:02d}"
    elif kind == "long_weekday":
        return _LONG_WEEKDAY_NAMES[value.weekday()]
    elif kind == "weekday":
        return _LONG_WEEKDAY_NAMES[value.weekday()][:3]
    elif kind == "day":
        return str(value.day)
    elif kind == "under_day":
        return f"{value.day:2d}"
    elif kind == "zero_day":
        return f"{value.day:02d}"
    elif kind == "hour":
        return f"{value.hour:02d}"
    elif kind == "hour12":
        return str(hour12)
    elif kind == "zero_hour12":
        return f"{hour12:02d}"
    elif kind == "minute":
        return str(value.minute)
    elif kind == "zero_minute":
        return f"{value.minute:02d}"
    elif kind == "second":
        return str(value.second)
    elif kind == "zero_second":
        return f"{value.second:02d}"
    elif kind == "PM":
        return "PM" if value.hour >= 12 else "AM"
    elif kind == "pm":
        return "pm" if value.hour >= 12 else "am"
    elif kind in _FRACTION_KINDS:
        nanos = f"{value.microsecond * 1000:09d}".ljust(element.digits, "0")
        digits = nanos[: element.digits]
        if kind == "frac9":
            digits = digits.rstrip("0")
            if not digits:
                return ""
        return element.sep + digits
    elif kind == "zone_name":
        name = value.tzname()
        if name and (name == "UTC" or not name.startswith("UTC")):
            return name
        return _format_offset(value, "num_tz")
    return _format_offset(value, kind)


def format_datetime(value: datetime.datetime, layout: str) -> str:
    """Format a datetime according to a reference-time layout."""
    return "".join(
        token if isinstance(token, str) else _format_element(value, token)
        for token in _tokenize(layout)
    )


def _names_pattern(names: tuple[str, ...]) -> str:
    return "(?i:" + "|".join(names) + ")"


_ELEMENT_PATTERNS: dict[str, str] = {
    "long_year": "[0-9]{4}",
    "year": "[0-9]{2}",
    "long_month": _names_pattern(_LONG_MONTH_NAMES),
    "month": _names_pattern(tuple(name[:3] for name in _LONG_MONTH_NAMES)),
    "num_month": "[0-9]{1,2}",
    "zero_month": "[0-9]{2}",
    "long_weekday": _names_pattern(_LONG_WEEKDAY_NAMES),
    "weekday": _names_pattern(tuple(name[:3] for name in _LONG_WEEKDAY_NAMES)),
    "day": "[0-9]{1,2}",
    "under_day": " ?[0-9]{1,2}",
    "zero_day": "[0-9]{2}",
    "hour": "[0-9]{1,2}",
    "hour12": "[0-9]{1,2}",
    "zero_hour12": "[0-9]{2}",
    "minute": "[0-9]{1,2}",
    "zero_minute": "[0-9]{2}",
    "second": "[0-9]{1,2}",
    "zero_second": "[0-9]{2}",
    "PM": "AM|PM",
    "pm": "am|pm",
    "zone_name": "[A-Za-z]{3,5}(?:[+-][0-9]{1,2})?|[+-][0-9]{2}(?:[0-9]{2})?",
    "num_colon_tz": "[+-][0-9]{2}:[0-9]{2}",
    "num_tz": "[+-][0-9]{4}",
    "num_short_tz": "[+-][0-9]{2}",
    "iso_colon_tz": "Z|[+-][0-9]{2}:[0-9]{2}",
    "iso_tz": "Z|[+-][0-9]{4}",
    "iso_short_tz": "Z|[+-][0-9]{2}",
}


class _Parser(NamedTuple):
    pattern: re.Pattern[str]
    groups: tuple[tuple[str, _Element], ...]


def _element_pattern(element: _Element) -> str:
    if element.kind == "frac0":
        return f"[.,][0-9]{{{element.digits}}}"
    if element.kind == "frac9":
        return "(?:[.,][0-9]+)?"
    return _ELEMENT_PATTERNS[element.kind]


@functools.lru_cache(maxsize=64)
def _compile(layout: str) -> _Parser:
    tokens = _tokenize(layout)
    parts: list[str] = []
    groups: list[tuple[str, _Element]] = []
    for index, token in enumerate(tokens):
        if isinstance(token, str):
            parts.append(re.escape(token))
            continue
        name = f"e{index}"
        parts.append(f"(?P<{name}>{_element_pattern(token)})")
        groups.append((name, token))

        if token.kind in _SECOND_KINDS:
            # Fractional seconds are accepted after seconds even when the layout has none.
            next_token = tokens[index + 1] if index + 1 < len(tokens) else None
            if not (
                isinstance(next_token, _Element) and next_token.kind in _FRACTION_KINDS
            ):
                frac_name = f"e{index}f"
                parts.append(f"(?P<{frac_name}>[.,][0-9]+)?")
                groups.append((frac_name, _Element("frac9", digits=9)))
    return _Parser(re.compile("".join(parts)), tuple(groups))


def _parse_offset(raw: str) -> datetime.timedelta:
    if raw == "Z":
        return datetime.timedelta(0)
    sign = -1 if raw[0] == "-" else 1
    digits = raw[1:].replace(":", "")
    hours = int(digits[:2])
    minutes = int(digits[2:4]) if len(digits) > 2 else 0
    return sign * datetime.timedelta(hours=hours, minutes=minutes)


def _attach_zone(
    naive: datetime.datetime,
    tz: datetime.tzinfo,
    offset: datetime.timedelta | None,
    zone_name: str | None,
) -> datetime.datetime:
    local = naive.replace(tzinfo=tz)
    if offset is not None:
        if local.utcoffset() == offset:
            return local
        return naive.replace(tzinfo=datetime.timezone(offset))
    if zone_name is not None:
        if local.tzname() == zone_name:
            return local
        if zone_name in ("UTC", "GMT"):
            return naive.replace(tzinfo=datetime.timezone.utc)
        # An abbreviation we cannot place: keep the name with a zero offset.
        return naive.replace(tzinfo=datetime.timezone(datetime.timedelta(0), zone_name))
    return local


def parse_datetime(
    text: str, layout: str, tz: datetime.tzinfo = datetime.timezone.utc
) -> datetime.datetime:
    """
    Parse text according to a reference-time layout.

    The result is in `tz` unless the text carries its own zone offset.

    Raises:
        ValueError: The text doesn't match the layout, or a field is out of range.
    """
    parser = _compile(layout)
    match = parser.pattern.fullmatch(text)
    if match is None:
        raise ValueError(f"Cannot parse {text!r} as {layout!r}")

    year, month, day = 1, 1, 1
    hour, minute, second, microsecond = 0, 0, 0, 0
    pm: bool | None = None
    offset: datetime.timedelta | None = None
    zone_name: str | None = None

    for name, element in parser.groups:
        raw = match.group(name)
        if raw is None:
            continue
        kind = element.kind
        if kind == "long_year":
            year = int(raw)
        elif kind == "year":
            year = int(raw)
            year += 1900 if year >= 69 else 2000
        elif kind in ("long_month", "month"):
            month = [n[: len(raw)].lower() for n in _LONG_MONTH_NAMES].index(raw.lower()) + 1
        elif kind in ("num_month", "zero_month"):
            month = int(raw)
        elif kind in ("day", "under_day", "zero_day"):
            day = int(raw)
        elif kind == "hour":
            hour = int(raw)
        elif kind in ("hour12", "zero_hour12"):
            hour = int(raw)
            if hour > 12:
                raise ValueError(f"Hour out of range in {text!r}")
        elif kind in ("minute", "zero_minute"):
            minute = int(raw)
        elif kind in _SECOND_KINDS:
            second = int(raw)
        elif kind in _FRACTION_KINDS:
            digits = raw[1:]
            if digits:
                microsecond = int(digits[:6].ljust(6, "0"))
        elif kind in ("PM", "pm"):
            pm = raw.upper() == "PM"
        elif kind == "zone_name":
            zone_name = raw
        elif kind.endswith("_tz"):
            offset = _parse_offset(raw)

    if pm is True and hour < 12:
        hour += 12
    elif pm is False and hour == 12:
        hour = 0

    naive = datetime.datetime(year, month, day, hour, minute, second, microsecond)
    return _attach_zone(naive, tz, offset, zone_name)


def _local_time_zone() -> datetime.tzinfo:
    local = datetime.datetime.now().astimezone().tzinfo
    return local if local is not None else datetime.timezone.utc


@functools.lru_cache(maxsize=None)
def _named_time_zone(name: str) -> datetime.tzinfo:
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError, OSError) as e:
        _logger.warning("Unknown time zone %r, falling back to UTC: %s", name, e)
        return datetime.timezone.utc


def resolve_time_zone(name: str) -> datetime.tzinfo:
    """
    Resolve an IANA time zone name. Unknown names fall back to UTC.

    An empty name and "UTC" mean UTC, "Local" is the system's current offset,
    looked up on every call.
    """
    if not name or name == "UTC":
        return datetime.timezone.utc
    if name == "Local":
        return _local_time_zone()
    return _named_time_zone(name)


def in_time_zone(value: datetime.datetime, tz: datetime.tzinfo) -> datetime.datetime:
    """
    Convert a datetime into `tz`. Naive datetimes are taken as UTC.

    A value that would leave the supported year range in `tz` (e.g. the
    first day of year 1 west of UTC) keeps its own offset.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    try:
        return value.astimezone(tz)
    except OverflowError:
        _logger.debug("Cannot convert %s into %s, keeping its own offset", value, tz)
        return value
