import dataclasses
import datetime
import decimal
import enum
import math
import zoneinfo
from typing import Any, NamedTuple

import numpy as np
import pytest

from structcopy.convert import (
    DefaultCopyService,
    parse_bool,
    parse_float,
    parse_int,
)
from structcopy.setting import Settings
from structcopy.slot import ZERO_DATETIME, Ref, Slot, SourceValue
from structcopy.typing import Float32, Int8, Int16, Uint8, Uint64, analyze_type_info

UTC = datetime.timezone.utc

UTC_SERVICE = DefaultCopyService(Settings(time_zone="UTC"))


def _has_time_zone(name: str) -> bool:
    try:
        zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def copy_into(
    value: Any,
    dst_type: Any,
    *,
    src_type: Any = Any,
    service: DefaultCopyService = UTC_SERVICE,
) -> tuple[bool, Any]:
    """Copy a value into a fresh slot of `dst_type`, returning the result and the slot content."""
    slot = Slot.fresh(analyze_type_info(dst_type))
    result = service.copy_value(SourceValue(value, src_type), slot)
    return result, slot.get()


@dataclasses.dataclass
class Point:
    x: int
    y: int


@dataclasses.dataclass
class OtherPoint:
    x: int
    y: int


@dataclasses.dataclass
class Point3D:
    x: int
    y: int
    z: int


@dataclasses.dataclass
class Tag:
    name: str

    def __str__(self) -> str:
        return f"#{self.name}"


class Level(enum.IntEnum):
    LOW = 1
    HIGH = 2


class Pair(NamedTuple):
    first: int
    second: int


def test_parse_bool() -> None:
    for text in ["1", "t", "T", "TRUE", "true", "True"]:
        assert parse_bool(text) is True
    for text in ["0", "f", "F", "FALSE", "false", "False"]:
        assert parse_bool(text) is False
    for text in ["yes", "tRUE", "", " true"]:
        with pytest.raises(ValueError):
            parse_bool(text)


def test_parse_int() -> None:
    assert parse_int("42") == 42
    assert parse_int("+7") == 7
    assert parse_int("-7") == -7
    assert parse_int("9223372036854775807") == 2**63 - 1
    assert parse_int("18446744073709551615", unsigned=True) == 2**64 - 1
    for text in ["", " 1", "1_000", "0x10", "1.0", "9223372036854775808"]:
        with pytest.raises(ValueError):
            parse_int(text)
    for text in ["-1", "+1", "18446744073709551616"]:
        with pytest.raises(ValueError):
            parse_int(text, unsigned=True)


def test_parse_float() -> None:
    assert parse_float("2.5") == 2.5
    assert parse_float("-.5") == -0.5
    assert parse_float("1e3") == 1000.0
    assert parse_float("0x1p-2") == 0.25
    assert parse_float("inf") == math.inf
    assert parse_float("-Infinity") == -math.inf
    assert math.isnan(parse_float("NaN"))
    for text in ["", "abc", "1e400", "1_0.0", " 1.0"]:
        with pytest.raises(ValueError):
            parse_float(text)


def test_assignable_values_are_written_verbatim() -> None:
    assert copy_into(5, int) == (True, 5)
    assert copy_into("x", str) == (True, "x")
    items = [1, 2]
    result, value = copy_into(items, list[int], src_type=list[int])
    assert result
    assert value is items

    point = Point(1, 2)
    result, value = copy_into(point, Point)
    assert result
    assert value is point


def test_any_destination_takes_anything() -> None:
    marker = object()
    assert copy_into(marker, Any) == (True, marker)


def test_union_destination() -> None:
    assert copy_into(5, int | str) == (True, 5)
    assert copy_into("5", int | str) == (True, "5")


def test_to_string() -> None:
    assert copy_into(True, str) == (True, "true")
    assert copy_into(False, str) == (True, "false")
    assert copy_into(42, str) == (True, "42")
    assert copy_into(-7, str) == (True, "-7")
    assert copy_into(np.uint8(200), str) == (True, "200")
    assert copy_into(Level.HIGH, str) == (True, "2")
    assert copy_into(decimal.Decimal("1.50"), str) == (True, "1.50")
    assert copy_into(Tag("go"), str) == (True, "#go")


def test_float_to_string_is_shortest() -> None:
    assert copy_into(3.14, str) == (True, "3.14")
    assert copy_into(3.0, str) == (True, "3")
    assert copy_into(0.1 + 0.2, str) == (True, "0.30000000000000004")
    assert copy_into(1e21, str) == (True, "1000000000000000000000")
    assert copy_into(np.float32(3.14), str) == (True, "3.14")
    assert copy_into(3.14, str, src_type=Float32) == (True, "3.14")


def test_non_finite_float_to_string() -> None:
    assert copy_into(math.nan, str) == (True, "NaN")
    assert copy_into(math.inf, str) == (True, "+Inf")
    assert copy_into(-math.inf, str) == (True, "-Inf")


def test_records_without_str_are_not_strings() -> None:
    assert copy_into(Point(1, 2), str) == (False, "")
    assert copy_into(b"bytes", str) == (False, "")
    assert copy_into([1, 2], str) == (False, "")


def test_string_to_bool() -> None:
    assert copy_into("true", bool) == (True, True)
    assert copy_into("0", bool) == (True, False)
    assert copy_into("yes", bool) == (False, False)


def test_string_to_int() -> None:
    assert copy_into("42", int) == (True, 42)
    assert copy_into("-5", int) == (True, -5)
    assert copy_into("4.2", int) == (False, 0)
    assert copy_into("x", int) == (False, 0)


def test_string_to_sized_int_wraps() -> None:
    assert copy_into("300", Int8) == (True, 44)
    assert copy_into("-129", Int8) == (True, 127)
    assert copy_into("65536", Int16) == (True, 0)
    assert copy_into("256", Uint8) == (True, 0)
    assert copy_into("18446744073709551615", Uint64) == (True, 2**64 - 1)


def test_string_to_unsigned_rejects_sign() -> None:
    assert copy_into("-1", Uint8) == (False, 0)
    assert copy_into("+1", Uint8) == (False, 0)


def test_string_to_numpy_types() -> None:
    result, value = copy_into("42", np.int32)
    assert result
    assert isinstance(value, np.int32)
    assert value == 42

    result, value = copy_into("1.5", np.float64)
    assert result
    assert isinstance(value, np.float64)
    assert value == 1.5


def test_string_to_float() -> None:
    assert copy_into("2.5", float) == (True, 2.5)
    assert copy_into("1e400", float) == (False, 0.0)
    assert copy_into("abc", float) == (False, 0.0)


def test_string_to_float32_rounds() -> None:
    result, value = copy_into("3.14", Float32)
    assert result
    assert value == float(np.float32(3.14))
    assert value != 3.14


def test_string_to_int_enum() -> None:
    assert copy_into("2", Level) == (True, Level.HIGH)
    result, _ = copy_into("7", Level)
    assert not result


def test_string_to_stringable_is_not_parsed() -> None:
    result, _ = copy_into("1.5", decimal.Decimal)
    assert not result


def test_datetime_to_string() -> None:
    value = datetime.datetime(2024, 3, 5, 12, 30, 45, tzinfo=UTC)
    assert copy_into(value, str) == (True, "2024-03-05 12:30:45")

    service = DefaultCopyService(Settings(datetime_layout="02/01/2006 15:04", time_zone="UTC"))
    assert copy_into(value, str, service=service) == (True, "05/03/2024 12:30")


def test_naive_datetime_is_taken_as_utc() -> None:
    if not _has_time_zone("Etc/GMT-8"):
        pytest.skip("time zone database without Etc/GMT-8")
    value = datetime.datetime(2024, 3, 5, 12, 30, 45)
    service = DefaultCopyService(Settings(time_zone="Etc/GMT-8"))
    assert copy_into(value, str, service=service) == (True, "2024-03-05 20:30:45")


def test_string_to_datetime() -> None:
    assert copy_into("2024-03-05 12:30:45", datetime.datetime) == (
        True,
        datetime.datetime(2024, 3, 5, 12, 30, 45, tzinfo=UTC),
    )


def test_unparseable_datetime_reports_success_without_writing() -> None:
    # Reported as copied, and the destination keeps its value.
    assert copy_into("not a date", datetime.datetime) == (True, ZERO_DATETIME)

    ref = Ref(datetime.datetime, datetime.datetime(2000, 1, 1, tzinfo=UTC))
    assert UTC_SERVICE.copy_value(SourceValue("2024-99-99 00:00:00"), Slot.of_ref(ref))
    assert ref.value == datetime.datetime(2000, 1, 1, tzinfo=UTC)


@pytest.mark.skipif(
    not _has_time_zone("Asia/Shanghai"),
    reason="time zone database without Asia/Shanghai",
)
def test_datetime_round_trip_with_default_settings() -> None:
    service = DefaultCopyService(Settings())
    value = datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)

    result, text = copy_into(value, str, service=service)
    assert result
    assert text == "2024-01-02 11:04:05"

    result, parsed = copy_into(text, datetime.datetime, service=service)
    assert result
    assert parsed == value
    assert parsed.utcoffset() == datetime.timedelta(hours=8)


def test_numeric_conversions() -> None:
    assert copy_into(3.9, int) == (True, 3)
    assert copy_into(-3.9, int) == (True, -3)
    assert copy_into(5, float) == (True, 5.0)
    assert copy_into(300, Int8) == (True, 44)
    assert copy_into(-1, Uint8) == (True, 255)
    assert copy_into(np.int64(7), int) == (True, 7)

    result, value = copy_into(7, np.uint16)
    assert result
    assert isinstance(value, np.uint16)


def test_non_finite_float_to_int_fails() -> None:
    assert copy_into(math.nan, int) == (False, 0)
    assert copy_into(math.inf, int) == (False, 0)


def test_bool_and_numbers_do_not_mix() -> None:
    assert copy_into(True, int) == (False, 0)
    assert copy_into(1, bool) == (False, False)
    assert copy_into(1.0, bool) == (False, False)


def test_structurally_identical_records_convert() -> None:
    result, value = copy_into(Point(1, 2), OtherPoint)
    assert result
    assert value == OtherPoint(1, 2)


def test_records_with_different_fields_do_not_convert() -> None:
    result, value = copy_into(Point(1, 2), Point3D)
    assert not result
    assert value == Point3D(0, 0, 0)

    result, _ = copy_into(Point(1, 2), Pair)
    assert not result


def test_absent_source_is_rejected() -> None:
    assert copy_into(None, int) == (False, 0)
    assert copy_into(Ref(int), int) == (False, 0)


def test_references_are_followed() -> None:
    assert copy_into(Ref(Any, Ref(int, 5)), str) == (True, "5")
    assert copy_into(Ref(Int8, 5), str) == (True, "5")


def test_declared_width_is_used_for_builtin_numbers() -> None:
    assert copy_into(0.1, str, src_type=Float32) == (True, "0.1")
    assert copy_into(Ref(Float32, 0.1), str) == (True, "0.1")


def test_read_only_destination_is_rejected() -> None:
    slot = Slot(analyze_type_info(int), lambda: 0)
    assert not slot.settable
    assert not UTC_SERVICE.copy_value(SourceValue(5), slot)


def test_writes_through_ref_slot() -> None:
    ref: Ref[int] = Ref(int)
    assert UTC_SERVICE.copy_value(SourceValue("12"), Slot.of_ref(ref))
    assert ref.value == 12


def test_failure_leaves_destination_untouched() -> None:
    ref = Ref(int, 99)
    assert not UTC_SERVICE.copy_value(SourceValue("x"), Slot.of_ref(ref))
    assert ref.value == 99


def test_service_uses_global_settings_by_default() -> None:
    import structcopy

    structcopy.init(Settings(datetime_layout="2006", time_zone="UTC"))
    service = DefaultCopyService()
    value = datetime.datetime(2024, 3, 5, tzinfo=UTC)
    assert copy_into(value, str, service=service) == (True, "2024")


def test_zero_datetime_to_string_west_of_utc() -> None:
    if not _has_time_zone("Etc/GMT+5"):
        pytest.skip("time zone database without Etc/GMT+5")
    service = DefaultCopyService(Settings(time_zone="Etc/GMT+5"))
    assert copy_into(ZERO_DATETIME, str, service=service) == (
        True,
        "0001-01-01 00:00:00",
    )
