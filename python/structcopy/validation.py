"""
Validation for structcopy settings.

Only the shape of the values is checked here. Time zone names are only
checked, never rejected: any name the system cannot resolve falls back to UTC
at conversion time.
"""

import re
from typing import Optional

_TIME_ZONE_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_+\-]*(/[A-Za-z0-9_+\-]+)*$")


class SettingsError(ValueError):
    """Exception raised for invalid settings values."""

    pass


def check_time_zone_name(name: str, max_length: int = 64) -> Optional[str]:
    """
    Check an IANA-style time zone name, e.g. `Asia/Shanghai` or `Etc/GMT+8`.

    An empty name is allowed and means UTC.

    Returns:
        None if valid, error message string if invalid
    """
    if not name:
        return None

    if len(name) > max_length:
        return f"Time zone name '{name}' exceeds maximum length of {max_length} characters"

    if not _TIME_ZONE_PATTERN.match(name):
        return (
            f"Time zone name '{name}' must start with a letter and contain only "
            "letters, digits, underscores, '+', '-' and '/'-separated parts"
        )

    return None


def check_datetime_layout(layout: str, max_length: int = 256) -> Optional[str]:
    """
    Check a datetime layout written against the reference time `2006-01-02 15:04:05`.

    Returns:
        None if valid, error message string if invalid
    """
    if not layout:
        return "Datetime layout cannot be empty"

    if len(layout) > max_length:
        return f"Datetime layout exceeds maximum length of {max_length} characters"

    return None


def validate_datetime_layout(layout: str) -> None:
    """Validate datetime layouts."""
    error = check_datetime_layout(layout)
    if error:
        raise SettingsError(error)
