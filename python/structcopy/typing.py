import collections.abc
import dataclasses
import datetime
import enum
import inspect
import types
import typing
from typing import (
    Annotated,
    Any,
    NamedTuple,
)

import numpy as np

try:
    import pydantic
except ImportError:
    pydantic = None  # type: ignore[assignment]


class TypeKind(NamedTuple):
    kind: str


Int8 = Annotated[int, TypeKind("Int8")]
Int16 = Annotated[int, TypeKind("Int16")]
Int32 = Annotated[int, TypeKind("Int32")]
Int64 = Annotated[int, TypeKind("Int64")]
Uint8 = Annotated[int, TypeKind("Uint8")]
Uint16 = Annotated[int, TypeKind("Uint16")]
Uint32 = Annotated[int, TypeKind("Uint32")]
Uint64 = Annotated[int, TypeKind("Uint64")]
Float32 = Annotated[float, TypeKind("Float32")]
Float64 = Annotated[float, TypeKind("Float64")]

INT_KINDS: dict[str, int] = {
    "Int8": 8,
    "Int16": 16,
    "Int32": 32,
    "Int64": 64,
}
UINT_KINDS: dict[str, int] = {
    "Uint8": 8,
    "Uint16": 16,
    "Uint32": 32,
    "Uint64": 64,
}
FLOAT_KINDS: tuple[str, ...] = ("Float32", "Float64")


def extract_ndarray_elem_dtype(ndarray_type: Any) -> Any:
    args = typing.get_args(ndarray_type)
    if not args:
        return Any
    _, dtype_spec = args
    dtype_args = typing.get_args(dtype_spec)
    if not dtype_args:
        raise ValueError(f"Invalid dtype specification: {dtype_spec}")
    return dtype_args[0]


def is_numpy_scalar_type(t: Any) -> bool:
    return isinstance(t, type) and issubclass(t, (np.integer, np.floating, np.bool_))


def is_namedtuple_type(t: Any) -> bool:
    return isinstance(t, type) and issubclass(t, tuple) and hasattr(t, "_fields")


def is_pydantic_model(t: Any) -> bool:
    return (
        pydantic is not None
        and isinstance(t, type)
        and issubclass(t, pydantic.BaseModel)
    )


def is_struct_type(t: Any) -> bool:
    return isinstance(t, type) and (
        dataclasses.is_dataclass(t) or is_namedtuple_type(t) or is_pydantic_model(t)
    )


def is_frozen_struct_type(t: type) -> bool:
    """
    Whether fields of instances of the struct type cannot be assigned.
    """
    if is_namedtuple_type(t):
        return True
    if dataclasses.is_dataclass(t):
        return bool(t.__dataclass_params__.frozen)  # type: ignore[attr-defined]
    if is_pydantic_model(t):
        return bool(t.model_config.get("frozen", False))  # type: ignore[attr-defined]
    return False


def struct_fields(struct_type: type) -> dict[str, Any]:
    """
    Public fields of a struct type in declaration order, mapped to their type annotations.

    Names starting with an underscore are private and never take part in a copy.
    """
    try:
        hints = typing.get_type_hints(struct_type, include_extras=True)
    except (NameError, TypeError):
        hints = dict(getattr(struct_type, "__annotations__", {}))

    fields: dict[str, Any] = {}
    if dataclasses.is_dataclass(struct_type):
        for field in dataclasses.fields(struct_type):
            fields[field.name] = hints.get(field.name, field.type)
    elif is_namedtuple_type(struct_type):
        for name in getattr(struct_type, "_fields", ()):
            fields[name] = hints.get(name, Any)
    elif is_pydantic_model(struct_type):
        model_fields = struct_type.model_fields  # type: ignore[attr-defined]
        for name, pyd_field in model_fields.items():
            fields[name] = hints.get(name, pyd_field.annotation)
    else:
        raise ValueError(f"Unsupported struct type: {struct_type}")

    return {name: t for name, t in fields.items() if not name.startswith("_")}


def has_custom_str(t: Any) -> bool:
    """
    Whether the class renders itself as text, i.e. defines its own `__str__`.

    `object.__str__` and the generic `pydantic.BaseModel.__str__` don't count.
    """
    if not isinstance(t, type):
        return False
    for klass in t.__mro__:
        if "__str__" in klass.__dict__:
            if klass is object:
                return False
            if pydantic is not None and klass is pydantic.BaseModel:
                return False
            return True
    return False


class DtypeRegistry:
    """
    Registry for NumPy scalar types.
    Maps NumPy scalar types to their basic type kind.
    """

    _DTYPE_KIND_PREFIX: dict[str, str] = {
        "i": "Int",
        "u": "Uint",
        "f": "Float",
    }

    @classmethod
    def validate_dtype_and_get_kind(cls, dtype: Any) -> str:
        """
        Validate that the given dtype is supported, and get its kind by dtype.
        """
        if dtype is Any:
            raise TypeError("A concrete numpy dtype is expected, got `Any`.")
        np_dtype = np.dtype(dtype)
        if np_dtype.kind == "b":
            return "Bool"
        prefix = cls._DTYPE_KIND_PREFIX.get(np_dtype.kind)
        kind = f"{prefix}{np_dtype.itemsize * 8}" if prefix is not None else ""
        if kind not in INT_KINDS and kind not in UINT_KINDS and kind not in FLOAT_KINDS:
            raise ValueError(f"Unsupported NumPy dtype: {dtype}")
        return kind


class AnalyzedAnyType(NamedTuple):
    """
    When the type annotation is missing or matches any type.
    """


class AnalyzedBasicType(NamedTuple):
    """
    For scalar types: bool, numbers of a given width, str, bytes and datetime.
    """

    kind: str


class AnalyzedListType(NamedTuple):
    """
    Any list type, e.g. list[T], Sequence[T], tuple[T, ...], NDArray[T], etc.
    """

    elem_type: Any


class AnalyzedStructType(NamedTuple):
    """
    Any struct type, e.g. dataclass, NamedTuple, Pydantic model.
    """

    struct_type: type


class AnalyzedUnionType(NamedTuple):
    """
    Any union type, e.g. T1 | T2 | ..., etc.
    """

    variant_types: list[Any]


class AnalyzedDictType(NamedTuple):
    """
    Any dict type, e.g. dict[T1, T2], Mapping[T1, T2], etc.
    """

    key_type: Any
    value_type: Any


class AnalyzedUnknownType(NamedTuple):
    """
    Any other type, e.g. Decimal, UUID, Enum or a plain class.
    """


AnalyzedTypeVariant = (
    AnalyzedAnyType
    | AnalyzedBasicType
    | AnalyzedListType
    | AnalyzedStructType
    | AnalyzedUnionType
    | AnalyzedDictType
    | AnalyzedUnknownType
)


@dataclasses.dataclass
class AnalyzedTypeInfo:
    """
    Analyzed info of a Python type.
    """

    # The type without annotations. e.g. int, list[int], dict[str, int]
    core_type: Any
    # The type without annotations and parameters. e.g. int, list, dict
    base_type: Any
    variant: AnalyzedTypeVariant
    nullable: bool = False


_SEQUENCE_BASE_TYPES = (
    list,
    tuple,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
)
_MAPPING_BASE_TYPES = (
    dict,
    collections.abc.Mapping,
    collections.abc.MutableMapping,
)


def _basic_kind_of(t: Any) -> str | None:
    if not isinstance(t, type):
        return None
    # bool must come before int, it's a subclass of it.
    if issubclass(t, bool):
        return "Bool"
    if issubclass(t, int):
        return "Int64"
    if issubclass(t, float):
        return "Float64"
    if issubclass(t, str):
        return "Str"
    if issubclass(t, bytes):
        return "Bytes"
    if issubclass(t, datetime.datetime):
        return "DateTime"
    return None


def analyze_type_info(t: Any) -> AnalyzedTypeInfo:
    """
    Analyze a Python type annotation (or a runtime class) and extract its copy-related type information.
    """

    annotations: tuple[Any, ...] = ()
    base_type = None
    type_args: tuple[Any, ...] = ()
    while True:
        base_type = typing.get_origin(t)
        if base_type is Annotated:
            annotations = t.__metadata__
            t = t.__origin__
        else:
            if base_type is None:
                base_type = t
            else:
                type_args = typing.get_args(t)
            break
    core_type = t

    kind: str | None = None
    for attr in annotations:
        if isinstance(attr, TypeKind):
            kind = attr.kind

    variant: AnalyzedTypeVariant | None = None

    if kind is not None:
        variant = AnalyzedBasicType(kind=kind)
    elif (
        base_type is Any
        or base_type is object
        or base_type is None
        or base_type is inspect.Parameter.empty
    ):
        variant = AnalyzedAnyType()
    elif is_struct_type(base_type):
        variant = AnalyzedStructType(struct_type=base_type)
    elif is_numpy_scalar_type(t):
        try:
            variant = AnalyzedBasicType(kind=DtypeRegistry.validate_dtype_and_get_kind(t))
        except ValueError:
            variant = AnalyzedUnknownType()
    elif base_type is np.ndarray:
        variant = AnalyzedListType(elem_type=extract_ndarray_elem_dtype(t))
    elif base_type in _SEQUENCE_BASE_TYPES:
        elem_type: Any = Any
        if base_type is tuple:
            if len(type_args) == 2 and type_args[1] is Ellipsis:
                elem_type = type_args[0]
            elif len(type_args) > 0:
                # Fixed-size heterogeneous tuples are not sequences of one element type.
                return AnalyzedTypeInfo(
                    core_type=core_type,
                    base_type=base_type,
                    variant=AnalyzedUnknownType(),
                )
        elif len(type_args) > 0:
            elem_type = type_args[0]
        variant = AnalyzedListType(elem_type=elem_type)
    elif base_type in _MAPPING_BASE_TYPES:
        key_type = type_args[0] if len(type_args) > 0 else Any
        value_type = type_args[1] if len(type_args) > 1 else Any
        variant = AnalyzedDictType(key_type=key_type, value_type=value_type)
    elif base_type in (types.UnionType, typing.Union):
        non_none_types = [arg for arg in type_args if arg not in (None, types.NoneType)]
        if len(non_none_types) == 0:
            return analyze_type_info(None)

        nullable = len(non_none_types) < len(type_args)
        if len(non_none_types) == 1:
            result = analyze_type_info(non_none_types[0])
            result.nullable = nullable
            return result

        return AnalyzedTypeInfo(
            core_type=core_type,
            base_type=base_type,
            variant=AnalyzedUnionType(variant_types=non_none_types),
            nullable=nullable,
        )
    elif (kind := _basic_kind_of(t)) is not None:
        variant = AnalyzedBasicType(kind=kind)
    elif isinstance(base_type, type) and issubclass(base_type, _SEQUENCE_BASE_TYPES):
        # Runtime classes, e.g. a list subclass.
        variant = AnalyzedListType(elem_type=Any)
    elif isinstance(base_type, type) and issubclass(base_type, _MAPPING_BASE_TYPES):
        variant = AnalyzedDictType(key_type=Any, value_type=Any)
    else:
        variant = AnalyzedUnknownType()

    return AnalyzedTypeInfo(
        core_type=core_type,
        base_type=base_type,
        variant=variant,
    )


class Shape(enum.Enum):
    """
    The structural classification of a type. Drives every copy decision.
    """

    BOOL = "Bool"
    INTEGER = "Integer"
    UNSIGNED = "Unsigned"
    FLOAT = "Float"
    STRING = "String"
    TEMPORAL = "Temporal"
    STRINGABLE = "Stringable"
    RECORD = "Record"
    SEQUENCE = "Sequence"
    MAPPING = "Mapping"
    OTHER = "Other"


NUMERIC_SHAPES = (Shape.INTEGER, Shape.UNSIGNED, Shape.FLOAT)


def shape_of(type_info: AnalyzedTypeInfo) -> Shape:
    variant = type_info.variant
    if isinstance(variant, AnalyzedBasicType):
        kind = variant.kind
        if kind == "Bool":
            return Shape.BOOL
        if kind in INT_KINDS:
            return Shape.INTEGER
        if kind in UINT_KINDS:
            return Shape.UNSIGNED
        if kind in FLOAT_KINDS:
            return Shape.FLOAT
        if kind == "Str":
            return Shape.STRING
        if kind == "DateTime":
            return Shape.TEMPORAL
        return Shape.OTHER
    if isinstance(variant, AnalyzedStructType):
        return Shape.RECORD
    if isinstance(variant, AnalyzedListType):
        return Shape.SEQUENCE
    if isinstance(variant, AnalyzedDictType):
        return Shape.MAPPING
    if isinstance(variant, AnalyzedUnknownType) and has_custom_str(type_info.base_type):
        return Shape.STRINGABLE
    return Shape.OTHER
