"""
Settings for structcopy.
"""

import dataclasses
import logging
import os
from typing import Any, Callable, Self

from .validation import check_time_zone_name, validate_datetime_layout

_logger = logging.getLogger(__name__)

DEFAULT_DATETIME_LAYOUT = "2006-01-02 15:04:05"
DEFAULT_TIME_ZONE = "Asia/Shanghai"

DATETIME_LAYOUT_ENV = "STRUCTCOPY_DATETIME_LAYOUT"
TIME_ZONE_ENV = "STRUCTCOPY_TIME_ZONE"


def _load_field(
    target: dict[str, Any],
    name: str,
    env_name: str,
    parse: Callable[[str], Any] | None = None,
) -> None:
    value = os.getenv(env_name)
    if value is not None:
        target[name] = value if parse is None else parse(value)


@dataclasses.dataclass(frozen=True)
class Settings:
    """
    Settings used by datetime conversions.

    `datetime_layout` is written against the reference time
    `2006-01-02 15:04:05` (see `structcopy.timefmt`), `time_zone` is an IANA
    time zone name. An empty time zone name means UTC.
    """

    datetime_layout: str = DEFAULT_DATETIME_LAYOUT
    time_zone: str = DEFAULT_TIME_ZONE

    def __post_init__(self) -> None:
        validate_datetime_layout(self.datetime_layout)
        error = check_time_zone_name(self.time_zone)
        if error:
            # Resolved at conversion time, where unknown names fall back to UTC.
            _logger.warning("%s, datetimes will be converted in UTC", error)

    @classmethod
    def from_env(cls) -> Self:
        """Load settings from environment variables."""
        kwargs: dict[str, Any] = dict()
        _load_field(
            kwargs,
            "datetime_layout",
            DATETIME_LAYOUT_ENV,
            parse=lambda v: v or DEFAULT_DATETIME_LAYOUT,
        )
        _load_field(kwargs, "time_zone", TIME_ZONE_ENV, parse=str.strip)
        return cls(**kwargs)
