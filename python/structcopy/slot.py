"""
Handles the copy engine reads from and writes into.
"""

from __future__ import annotations

import dataclasses
import datetime
import inspect
from typing import Any, Callable, Generic, NamedTuple, TypeVar

import numpy as np

from .typing import (
    AnalyzedAnyType,
    AnalyzedBasicType,
    AnalyzedDictType,
    AnalyzedListType,
    AnalyzedStructType,
    AnalyzedTypeInfo,
    AnalyzedUnknownType,
    analyze_type_info,
    is_namedtuple_type,
    is_pydantic_model,
    shape_of,
    struct_fields,
)

T = TypeVar("T")

ZERO_DATETIME = datetime.datetime(1, 1, 1, tzinfo=datetime.timezone.utc)

_ZERO_BY_KIND: dict[str, Any] = {
    "Bool": False,
    "Str": "",
    "Bytes": b"",
    "DateTime": ZERO_DATETIME,
    "Float32": 0.0,
    "Float64": 0.0,
}


class Ref(Generic[T]):
    """
    A writable reference to a value of a declared type.

    It's what `copy()` writes into when the destination isn't a mutable
    record, list or dict itself, e.g. `Ref(int)` or `Ref(list[int], [1, 2])`.
    A `Ref` whose value is another `Ref` is followed to the innermost one.
    """

    __slots__ = ("value_type", "value")

    def __init__(self, value_type: Any = Any, value: T | None = None) -> None:
        self.value_type = value_type
        self.value = value

    def __repr__(self) -> str:
        return f"Ref({self.value_type!r}, {self.value!r})"


def innermost_ref(ref: Ref[Any]) -> Ref[Any]:
    while isinstance(ref.value, Ref):
        ref = ref.value
    return ref


def refine_type_info(declared: AnalyzedTypeInfo, value: Any) -> AnalyzedTypeInfo:
    """
    Pick the type info describing a value best: its declared type or its runtime class.

    Declared types win when they say more than the runtime class does, i.e. a
    width annotation on a builtin number, or element types of a container.
    """
    actual = analyze_type_info(type(value))
    declared_variant = declared.variant
    if isinstance(declared_variant, AnalyzedBasicType):
        if (
            isinstance(actual.variant, AnalyzedBasicType)
            and actual.core_type in (int, float)
            and shape_of(declared) == shape_of(actual)
        ):
            return declared
        return actual
    if isinstance(declared_variant, (AnalyzedListType, AnalyzedDictType)):
        base_type = declared.base_type
        if isinstance(base_type, type) and isinstance(value, base_type):
            return declared
    return actual


class SourceValue(NamedTuple):
    """
    A value to copy from, with the type it's declared as (if known).
    """

    value: Any
    declared_type: Any = Any

    def unwrap(self) -> tuple[Any, AnalyzedTypeInfo] | None:
        """
        Follow references to the concrete value. None when it's absent.
        """
        value = self.value
        declared_type = self.declared_type
        while isinstance(value, Ref):
            declared_type = value.value_type
            value = value.value
        if value is None:
            return None
        return value, refine_type_info(analyze_type_info(declared_type), value)


def get_zero_value_for_type(type_info: AnalyzedTypeInfo) -> tuple[Any, bool]:
    """
    Get the zero value for a type, used when a destination needs allocating.

    Returns:
        A tuple of (zero_value, is_supported) where:
        - zero_value: The zero value if it's supported
        - is_supported: True if a zero value can be made for this type
    """
    if type_info.nullable:
        return None, True

    variant = type_info.variant
    if isinstance(variant, AnalyzedAnyType):
        return None, True

    if isinstance(variant, AnalyzedBasicType):
        zero = _ZERO_BY_KIND.get(variant.kind, 0)
        core_type = type_info.core_type
        if isinstance(core_type, type) and not isinstance(zero, core_type):
            try:
                zero = core_type(zero)
            except (TypeError, ValueError):
                return None, False
        return zero, True

    if isinstance(variant, AnalyzedListType):
        base_type = type_info.base_type
        if base_type is tuple:
            return (), True
        if base_type is np.ndarray:
            elem_type = variant.elem_type
            return np.array([], dtype=None if elem_type is Any else elem_type), True
        if isinstance(base_type, type) and not inspect.isabstract(base_type):
            try:
                return base_type(), True
            except (TypeError, ValueError):
                return None, False
        return [], True

    if isinstance(variant, AnalyzedDictType):
        base_type = type_info.base_type
        if base_type is dict or inspect.isabstract(base_type):
            return {}, True
        try:
            return base_type(), True
        except (TypeError, ValueError):
            return None, False

    if isinstance(variant, AnalyzedStructType):
        return _get_zero_struct(variant.struct_type)

    if isinstance(variant, AnalyzedUnknownType) and isinstance(type_info.core_type, type):
        try:
            return type_info.core_type(), True
        except (TypeError, ValueError):
            return None, False

    return None, False


def _required_struct_fields(struct_type: type) -> list[str]:
    if dataclasses.is_dataclass(struct_type):
        return [
            f.name
            for f in dataclasses.fields(struct_type)
            if f.init
            and f.default is dataclasses.MISSING
            and f.default_factory is dataclasses.MISSING
        ]
    if is_namedtuple_type(struct_type):
        defaults = getattr(struct_type, "_field_defaults", {})
        return [name for name in struct_type._fields if name not in defaults]  # type: ignore[attr-defined]
    if is_pydantic_model(struct_type):
        model_fields = struct_type.model_fields  # type: ignore[attr-defined]
        return [name for name, f in model_fields.items() if f.is_required()]
    return []


def _get_zero_struct(struct_type: type) -> tuple[Any, bool]:
    annotations = struct_fields(struct_type)
    init_kwargs: dict[str, Any] = {}
    for name in _required_struct_fields(struct_type):
        zero, is_supported = get_zero_value_for_type(
            analyze_type_info(annotations.get(name, Any))
        )
        if not is_supported:
            return None, False
        init_kwargs[name] = zero
    try:
        return struct_type(**init_kwargs), True
    except (TypeError, ValueError):
        return None, False


class Slot:
    """
    A destination location with a declared type.

    A slot without a setter is read-only: the engine never writes into it,
    but structural copies may still fill the container it holds in place.
    """

    type_info: AnalyzedTypeInfo
    _getter: Callable[[], Any]
    _setter: Callable[[Any], None] | None

    def __init__(
        self,
        type_info: AnalyzedTypeInfo,
        getter: Callable[[], Any],
        setter: Callable[[Any], None] | None = None,
    ):
        self.type_info = type_info
        self._getter = getter
        self._setter = setter

    @property
    def settable(self) -> bool:
        return self._setter is not None

    def get(self) -> Any:
        return self._getter()

    def set(self, value: Any) -> None:
        if self._setter is None:
            raise AttributeError("Slot is not settable")
        self._setter(value)

    @classmethod
    def fresh(cls, type_info: AnalyzedTypeInfo) -> Slot:
        """A new standalone slot holding the zero value of the type."""
        cell = [get_zero_value_for_type(type_info)[0]]

        def set_cell(value: Any) -> None:
            cell[0] = value

        return cls(type_info, lambda: cell[0], set_cell)

    @classmethod
    def of_ref(cls, ref: Ref[Any]) -> Slot:
        ref = innermost_ref(ref)

        def set_ref(value: Any) -> None:
            ref.value = value

        return cls(analyze_type_info(ref.value_type), lambda: ref.value, set_ref)

    @classmethod
    def of_attr(
        cls, obj: Any, name: str, annotation: Any, settable: bool = True
    ) -> Slot:
        """
        A slot for an attribute of a record. An attribute holding a `Ref` is written through.
        """
        current = getattr(obj, name, None)
        if isinstance(current, Ref):
            return cls.of_ref(current)

        def set_attr(value: Any) -> None:
            setattr(obj, name, value)

        return cls(
            analyze_type_info(annotation),
            lambda: getattr(obj, name, None),
            set_attr if settable else None,
        )

    @classmethod
    def of_object(cls, obj: Any) -> Slot:
        """A read-only slot for a mutable object passed in as the destination."""
        return cls(analyze_type_info(type(obj)), lambda: obj)
