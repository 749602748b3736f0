"""
The value coercion engine: decides whether and how one source value is
written into one destination slot.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Protocol

import numpy as np

from . import lib, timefmt
from .setting import Settings
from .slot import Slot, SourceValue
from .typing import (
    INT_KINDS,
    NUMERIC_SHAPES,
    UINT_KINDS,
    AnalyzedAnyType,
    AnalyzedBasicType,
    AnalyzedDictType,
    AnalyzedListType,
    AnalyzedStructType,
    AnalyzedTypeInfo,
    AnalyzedUnionType,
    AnalyzedUnknownType,
    Shape,
    analyze_type_info,
    has_custom_str,
    shape_of,
    struct_fields,
)

_logger = logging.getLogger(__name__)

_BOOL_LITERALS: dict[str, bool] = {
    "1": True,
    "t": True,
    "T": True,
    "TRUE": True,
    "true": True,
    "True": True,
    "0": False,
    "f": False,
    "F": False,
    "FALSE": False,
    "false": False,
    "False": False,
}
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_UINT_PATTERN = re.compile(r"[0-9]+")
_FLOAT_PATTERN = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)
_HEX_FLOAT_PATTERN = re.compile(
    r"[+-]?0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)[pP][+-]?[0-9]+"
)
_INFINITY_PATTERN = re.compile(r"[+-]?inf(?:inity)?", re.IGNORECASE)

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT64_MAX = (1 << 64) - 1


class CopyService(Protocol):
    """
    Decides whether and how one source value is written into a destination slot.

    Implementations must not raise for unconvertible pairs: they return False
    and leave the destination untouched.
    """

    def copy_value(self, source: SourceValue, destination: Slot) -> bool: ...


def _wrap_int(value: int, kind: str) -> int:
    """Fit an integer into a fixed-width kind, wrapping around like a two's complement cast."""
    bits = INT_KINDS.get(kind) or UINT_KINDS[kind]
    value &= (1 << bits) - 1
    if kind in INT_KINDS and value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _convert_number(value: Any, dst_kind: str) -> int | float:
    """
    Convert a number to a numeric kind.

    Floats are truncated toward zero for integer kinds, integers wrap to the
    destination width. Non-finite floats can't become integers (ValueError /
    OverflowError).
    """
    if dst_kind in INT_KINDS or dst_kind in UINT_KINDS:
        if isinstance(value, (float, np.floating)):
            value = math.trunc(value)
        return _wrap_int(int(value), dst_kind)
    if dst_kind == "Float32":
        with np.errstate(over="ignore"):
            return float(np.float32(value))
    return float(value)


def _materialize(value: Any, type_info: AnalyzedTypeInfo) -> Any:
    """Make a basic value an instance of the destination's concrete class, e.g. numpy.int32."""
    core_type = type_info.core_type
    if isinstance(core_type, type) and not isinstance(value, core_type):
        return core_type(value)
    return value


def _format_float(value: Any, kind: str) -> str:
    """Shortest decimal text that reads back to the same float at the kind's width."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    np_value = np.float32(value) if kind == "Float32" else np.float64(value)
    return np.format_float_positional(np_value, unique=True, trim="-")


def parse_bool(text: str) -> bool:
    value = _BOOL_LITERALS.get(text)
    if value is None:
        raise ValueError(f"Invalid bool literal: {text!r}")
    return value


def parse_int(text: str, unsigned: bool = False) -> int:
    """Parse base-10 digits, with an optional sign unless unsigned, within 64 bits."""
    pattern = _UINT_PATTERN if unsigned else _INT_PATTERN
    if not pattern.fullmatch(text):
        raise ValueError(f"Invalid integer literal: {text!r}")
    value = int(text)
    low, high = (0, _UINT64_MAX) if unsigned else (_INT64_MIN, _INT64_MAX)
    if not low <= value <= high:
        raise ValueError(f"Integer literal out of range: {text!r}")
    return value


def parse_float(text: str) -> float:
    """Parse a 64-bit float literal. Magnitudes too large for 64 bits are rejected."""
    if _FLOAT_PATTERN.fullmatch(text):
        value = float(text)
        if math.isinf(value) and not _INFINITY_PATTERN.fullmatch(text):
            raise ValueError(f"Float literal out of range: {text!r}")
        return value
    if _HEX_FLOAT_PATTERN.fullmatch(text):
        try:
            return float.fromhex(text)
        except OverflowError as e:
            raise ValueError(f"Float literal out of range: {text!r}") from e
    raise ValueError(f"Invalid float literal: {text!r}")


def _type_args_match(src: AnalyzedTypeInfo, dst: AnalyzedTypeInfo) -> bool:
    src_variant = src.variant
    dst_variant = dst.variant
    if isinstance(src_variant, AnalyzedListType) and isinstance(
        dst_variant, AnalyzedListType
    ):
        return dst_variant.elem_type is Any or src_variant.elem_type == dst_variant.elem_type
    if isinstance(src_variant, AnalyzedDictType) and isinstance(
        dst_variant, AnalyzedDictType
    ):
        return (
            dst_variant.key_type is Any or src_variant.key_type == dst_variant.key_type
        ) and (
            dst_variant.value_type is Any
            or src_variant.value_type == dst_variant.value_type
        )
    return False


def _assignable_target(
    src: AnalyzedTypeInfo, dst: AnalyzedTypeInfo
) -> AnalyzedTypeInfo | None:
    """
    The destination type (or union member) that a source type is directly assignable to.
    """
    dst_variant = dst.variant
    src_variant = src.variant

    if isinstance(dst_variant, AnalyzedAnyType):
        return dst

    if isinstance(dst_variant, AnalyzedUnionType):
        for variant_type in dst_variant.variant_types:
            target = _assignable_target(src, analyze_type_info(variant_type))
            if target is not None:
                return target
        return None

    if isinstance(dst_variant, AnalyzedBasicType):
        if isinstance(src_variant, AnalyzedBasicType) and src_variant.kind == dst_variant.kind:
            return dst
        return None

    if not (isinstance(src.base_type, type) and isinstance(dst.base_type, type)):
        return None
    if not issubclass(src.base_type, dst.base_type):
        return None

    if isinstance(dst_variant, (AnalyzedListType, AnalyzedDictType)):
        return dst if _type_args_match(src, dst) else None
    if isinstance(dst_variant, (AnalyzedStructType, AnalyzedUnknownType)):
        return dst
    return None


class DefaultCopyService:
    """
    The default decision procedure. Given a source value and a destination slot, in order:

    1. Unwrap the source. An absent source or a non-settable slot is a no-op.
    2. Directly assignable types are written verbatim.
    3. A string destination gets the text form of bools, numbers, datetimes
       and values of classes with their own `__str__`.
    4. A string source is parsed into bool, number and datetime destinations.
    5. Numbers convert between widths and kinds; records convert into
       structurally identical record types.

    Datetime conversions use the settings the service is created with.
    """

    _settings: Settings

    def __init__(self, settings: Settings | None = None):
        self._settings = settings if settings is not None else lib.get_settings()

    @property
    def settings(self) -> Settings:
        return self._settings

    def copy_value(self, source: SourceValue, destination: Slot) -> bool:
        unwrapped = source.unwrap()
        if unwrapped is None or not destination.settable:
            return False
        value, src_type_info = unwrapped
        try:
            return self._copy_value(value, src_type_info, destination)
        except (TypeError, ValueError, OverflowError, AttributeError) as e:
            _logger.debug(
                "Failed to write %r into %s: %s",
                value,
                destination.type_info.core_type,
                e,
            )
            return False

    def _copy_value(
        self, value: Any, src_type_info: AnalyzedTypeInfo, destination: Slot
    ) -> bool:
        dst_type_info = destination.type_info

        target = _assignable_target(src_type_info, dst_type_info)
        if target is not None:
            if isinstance(target.variant, AnalyzedBasicType):
                value = _materialize(value, target)
            destination.set(value)
            return True

        src_shape = shape_of(src_type_info)
        dst_shape = shape_of(dst_type_info)

        if dst_shape is Shape.STRING:
            text = self._format_as_str(value, src_type_info, src_shape)
            if text is None:
                return False
            destination.set(_materialize(text, dst_type_info))
            return True

        if src_shape is Shape.STRING:
            return self._parse_from_str(value, destination, dst_shape)

        if src_shape in NUMERIC_SHAPES and dst_shape in NUMERIC_SHAPES:
            assert isinstance(dst_type_info.variant, AnalyzedBasicType)
            converted = _convert_number(value, dst_type_info.variant.kind)
            destination.set(_materialize(converted, dst_type_info))
            return True

        if src_shape is Shape.RECORD and dst_shape is Shape.RECORD:
            return self._convert_struct(value, src_type_info, destination)

        return False

    def _format_as_str(
        self, value: Any, src_type_info: AnalyzedTypeInfo, src_shape: Shape
    ) -> str | None:
        if src_shape is Shape.BOOL:
            return "true" if value else "false"
        if src_shape in (Shape.INTEGER, Shape.UNSIGNED):
            return str(int(value))
        if src_shape is Shape.FLOAT:
            assert isinstance(src_type_info.variant, AnalyzedBasicType)
            return _format_float(value, src_type_info.variant.kind)
        if src_shape is Shape.TEMPORAL:
            tz = timefmt.resolve_time_zone(self._settings.time_zone)
            return timefmt.format_datetime(
                timefmt.in_time_zone(value, tz), self._settings.datetime_layout
            )
        if src_shape in (Shape.RECORD, Shape.STRINGABLE) and has_custom_str(
            type(value)
        ):
            return str(value)
        return None

    def _parse_from_str(self, text: str, destination: Slot, dst_shape: Shape) -> bool:
        dst_type_info = destination.type_info
        dst_variant = dst_type_info.variant

        if dst_shape is Shape.BOOL:
            destination.set(_materialize(parse_bool(text), dst_type_info))
            return True
        if dst_shape in (Shape.INTEGER, Shape.UNSIGNED):
            assert isinstance(dst_variant, AnalyzedBasicType)
            parsed = parse_int(text, unsigned=dst_shape is Shape.UNSIGNED)
            converted = _convert_number(parsed, dst_variant.kind)
            destination.set(_materialize(converted, dst_type_info))
            return True
        if dst_shape is Shape.FLOAT:
            assert isinstance(dst_variant, AnalyzedBasicType)
            converted = _convert_number(parse_float(text), dst_variant.kind)
            destination.set(_materialize(converted, dst_type_info))
            return True
        if dst_shape is Shape.TEMPORAL:
            tz = timefmt.resolve_time_zone(self._settings.time_zone)
            try:
                parsed_time = timefmt.parse_datetime(
                    text, self._settings.datetime_layout, tz
                )
            except ValueError as e:
                # Reported as copied, though nothing is written.
                _logger.debug("Cannot parse %r as a datetime: %s", text, e)
                return True
            destination.set(_materialize(parsed_time, dst_type_info))
            return True
        return False

    def _convert_struct(
        self, value: Any, src_type_info: AnalyzedTypeInfo, destination: Slot
    ) -> bool:
        """Rebuild a record as a record type with the same fields (names and types)."""
        assert isinstance(src_type_info.variant, AnalyzedStructType)
        assert isinstance(destination.type_info.variant, AnalyzedStructType)
        src_struct_type = src_type_info.variant.struct_type
        dst_struct_type = destination.type_info.variant.struct_type

        src_fields = struct_fields(src_struct_type)
        if list(src_fields.items()) != list(struct_fields(dst_struct_type).items()):
            return False
        destination.set(
            dst_struct_type(**{name: getattr(value, name) for name in src_fields})
        )
        return True
