"""
The structural copy driver: picks a strategy from the shapes of the source
and destination, and runs the copy service for each element, field or entry.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import logging
from typing import Any, Callable

import numpy as np

from .convert import CopyService, DefaultCopyService
from .slot import Ref, Slot, SourceValue, get_zero_value_for_type
from .typing import (
    AnalyzedDictType,
    AnalyzedListType,
    AnalyzedTypeInfo,
    Shape,
    analyze_type_info,
    is_frozen_struct_type,
    is_namedtuple_type,
    is_struct_type,
    shape_of,
    struct_fields,
)

_logger = logging.getLogger(__name__)


@dataclasses.dataclass
class CopyStats:
    """
    Outcome of one `copy()` call, counted in units (elements, fields or entries).

    `skipped` counts source units that didn't land in the destination: a
    caller can tell a full copy from a partial one by checking it's zero.
    """

    written: int = 0
    skipped: int = 0

    @property
    def complete(self) -> bool:
        return self.skipped == 0


class ChildFieldPath:
    """Context manager to append a field to field_path on enter and pop it on exit."""

    _field_path: list[str]
    _field_name: str

    def __init__(self, field_path: list[str], field_name: str):
        self._field_path: list[str] = field_path
        self._field_name = field_name

    def __enter__(self) -> ChildFieldPath:
        self._field_path.append(self._field_name)
        return self

    def __exit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        self._field_path.pop()


class _CopyRun:
    """State of one `copy()` call."""

    service: CopyService
    stats: CopyStats
    field_path: list[str]

    def __init__(self, service: CopyService):
        self.service = service
        self.stats = CopyStats()
        self.field_path = ["$"]

    def skip(self, reason: str) -> None:
        self.stats.skipped += 1
        _logger.debug("Skipped `%s`: %s", "".join(self.field_path), reason)

    def copy_unit(self, source: SourceValue, destination: Slot) -> bool:
        if self.service.copy_value(source, destination):
            self.stats.written += 1
            return True
        self.skip(
            f"cannot copy {type(source.value).__name__} into "
            f"{destination.type_info.core_type}"
        )
        return False


def _destination_slot(destination: Any) -> Slot | None:
    if isinstance(destination, Ref):
        return Slot.of_ref(destination)
    if isinstance(
        destination, (collections.abc.MutableSequence, collections.abc.MutableMapping)
    ):
        return Slot.of_object(destination)
    destination_type = type(destination)
    if is_struct_type(destination_type) and not is_namedtuple_type(destination_type):
        return Slot.of_object(destination)
    return None


def _ensure_container(destination: Slot) -> Any | None:
    """The record, list or dict held by the slot, allocated when the slot holds None."""
    current = destination.get()
    if current is not None or not destination.settable:
        return current
    zero, is_supported = get_zero_value_for_type(
        dataclasses.replace(destination.type_info, nullable=False)
    )
    if not is_supported or zero is None:
        return None
    destination.set(zero)
    return zero


def _field_slot(target: Any, name: str, annotation: Any, settable: bool) -> Slot:
    """
    A slot for a record field. An optional field holding None is first set to
    the zero value of its type.
    """
    slot = Slot.of_attr(target, name, annotation, settable=settable)
    if slot.settable and slot.type_info.nullable and slot.get() is None:
        zero, is_supported = get_zero_value_for_type(
            dataclasses.replace(slot.type_info, nullable=False)
        )
        if is_supported and zero is not None:
            try:
                slot.set(zero)
            except (TypeError, ValueError) as e:
                _logger.debug("Cannot allocate field `%s`: %s", name, e)
    return slot


def _build_sequence(type_info: AnalyzedTypeInfo, items: list[Any]) -> Any:
    base_type = type_info.base_type
    if base_type is np.ndarray:
        assert isinstance(type_info.variant, AnalyzedListType)
        elem_type = type_info.variant.elem_type
        return np.array(items, dtype=None if elem_type is Any else elem_type)
    if base_type is tuple:
        return tuple(items)
    return list(items)


def _copy_sequence(
    run: _CopyRun, src_value: Any, src_type_info: AnalyzedTypeInfo, destination: Slot
) -> None:
    assert isinstance(src_type_info.variant, AnalyzedListType)
    assert isinstance(destination.type_info.variant, AnalyzedListType)
    src_elem_type = src_type_info.variant.elem_type
    elem_type_info = analyze_type_info(destination.type_info.variant.elem_type)

    converted: list[Any] = []
    for i, item in enumerate(src_value):
        with ChildFieldPath(run.field_path, f"[{i}]"):
            if item is None:
                run.skip("absent element")
                continue
            elem_slot = Slot.fresh(elem_type_info)
            if run.copy_unit(SourceValue(item, src_elem_type), elem_slot):
                converted.append(elem_slot.get())

    current = destination.get()
    if isinstance(current, collections.abc.MutableSequence):
        current.extend(converted)
    elif converted and destination.settable:
        existing = list(current) if current is not None else []
        destination.set(_build_sequence(destination.type_info, existing + converted))


def _copy_struct_to_struct(
    run: _CopyRun, src_value: Any, src_type_info: AnalyzedTypeInfo, destination: Slot
) -> None:
    target = _ensure_container(destination)
    if target is None:
        run.skip("destination record cannot be allocated")
        return
    dst_fields = struct_fields(type(target))
    settable = not is_frozen_struct_type(type(target))

    for name, annotation in struct_fields(type(src_value)).items():
        with ChildFieldPath(run.field_path, f".{name}"):
            if name not in dst_fields:
                run.skip("no such field in destination")
                continue
            if not settable:
                run.skip("destination field is read-only")
                continue
            field_slot = _field_slot(target, name, dst_fields[name], settable)
            run.copy_unit(SourceValue(getattr(src_value, name), annotation), field_slot)


def _copy_map_to_map(
    run: _CopyRun, src_value: Any, src_type_info: AnalyzedTypeInfo, destination: Slot
) -> None:
    assert isinstance(src_type_info.variant, AnalyzedDictType)
    assert isinstance(destination.type_info.variant, AnalyzedDictType)
    target = _ensure_container(destination)
    if not isinstance(target, collections.abc.MutableMapping):
        run.skip("destination mapping cannot be written")
        return
    src_variant = src_type_info.variant
    key_type_info = analyze_type_info(destination.type_info.variant.key_type)
    value_type_info = analyze_type_info(destination.type_info.variant.value_type)

    # The source may be the destination itself.
    for key, value in list(src_value.items()):
        with ChildFieldPath(run.field_path, f"[{key!r}]"):
            _copy_entry(
                run,
                target,
                SourceValue(key, src_variant.key_type),
                SourceValue(value, src_variant.value_type),
                key_type_info,
                value_type_info,
            )


def _copy_entry(
    run: _CopyRun,
    target: collections.abc.MutableMapping[Any, Any],
    key: SourceValue,
    value: SourceValue,
    key_type_info: AnalyzedTypeInfo,
    value_type_info: AnalyzedTypeInfo,
) -> None:
    """Write one entry only when both its key and its value convert."""
    key_slot = Slot.fresh(key_type_info)
    if not run.service.copy_value(key, key_slot):
        run.skip("key cannot be converted")
        return
    value_slot = Slot.fresh(value_type_info)
    if not run.service.copy_value(value, value_slot):
        run.skip("value cannot be converted")
        return
    try:
        target[key_slot.get()] = value_slot.get()
    except TypeError as e:
        run.skip(f"key cannot be used: {e}")
        return
    run.stats.written += 1


def _copy_map_to_struct(
    run: _CopyRun, src_value: Any, src_type_info: AnalyzedTypeInfo, destination: Slot
) -> None:
    assert isinstance(src_type_info.variant, AnalyzedDictType)
    target = _ensure_container(destination)
    if target is None:
        run.skip("destination record cannot be allocated")
        return
    dst_fields = struct_fields(type(target))
    settable = not is_frozen_struct_type(type(target))
    src_value_type = src_type_info.variant.value_type

    for key, value in list(src_value.items()):
        with ChildFieldPath(run.field_path, f"[{key!r}]"):
            if not isinstance(key, str) or key not in dst_fields:
                run.skip("no such field in destination")
                continue
            if not settable:
                run.skip("destination field is read-only")
                continue
            field_slot = _field_slot(target, key, dst_fields[key], settable)
            run.copy_unit(SourceValue(value, src_value_type), field_slot)


def _copy_struct_to_map(
    run: _CopyRun, src_value: Any, src_type_info: AnalyzedTypeInfo, destination: Slot
) -> None:
    assert isinstance(destination.type_info.variant, AnalyzedDictType)
    target = _ensure_container(destination)
    if not isinstance(target, collections.abc.MutableMapping):
        run.skip("destination mapping cannot be written")
        return
    key_type_info = analyze_type_info(destination.type_info.variant.key_type)
    value_type_info = analyze_type_info(destination.type_info.variant.value_type)

    for name, annotation in struct_fields(type(src_value)).items():
        with ChildFieldPath(run.field_path, f".{name}"):
            _copy_entry(
                run,
                target,
                SourceValue(name, str),
                SourceValue(getattr(src_value, name), annotation),
                key_type_info,
                value_type_info,
            )


_Strategy = Callable[[_CopyRun, Any, AnalyzedTypeInfo, Slot], None]

_STRATEGIES: dict[tuple[Shape, Shape], _Strategy] = {
    (Shape.SEQUENCE, Shape.SEQUENCE): _copy_sequence,
    (Shape.RECORD, Shape.RECORD): _copy_struct_to_struct,
    (Shape.MAPPING, Shape.MAPPING): _copy_map_to_map,
    (Shape.MAPPING, Shape.RECORD): _copy_map_to_struct,
    (Shape.RECORD, Shape.MAPPING): _copy_struct_to_map,
}


def copy(
    source: Any, destination: Any, *, service: CopyService | None = None
) -> CopyStats:
    """
    Copy the data of `source` into `destination`, converting types where they differ.

    `destination` is either a `Ref` or a mutable record, list or dict that is
    filled in place; anything else (e.g. an int, a tuple or a NamedTuple) is
    left alone. Sequences are copied element-wise, records by field name and
    mappings entry-wise; mappings and records also copy into each other.
    Any other pair is handed to the copy service as a single value.

    Nothing is raised for data that cannot be converted: those elements,
    fields or entries are skipped and counted in the returned stats.
    """
    run = _CopyRun(service if service is not None else DefaultCopyService())

    unwrapped = SourceValue(source).unwrap()
    if unwrapped is None:
        _logger.debug("Nothing to copy: the source is absent")
        return run.stats
    src_value, src_type_info = unwrapped

    destination_slot = _destination_slot(destination)
    if destination_slot is None:
        _logger.debug(
            "Nothing to copy: destination of type %s is not writable",
            type(destination).__name__,
        )
        return run.stats

    strategy = _STRATEGIES.get(
        (shape_of(src_type_info), shape_of(destination_slot.type_info))
    )
    if strategy is None:
        run.copy_unit(SourceValue(source), destination_slot)
    else:
        strategy(run, src_value, src_type_info, destination_slot)
    return run.stats
