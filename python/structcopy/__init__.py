"""
Structural value copying with type coercion between records, sequences,
mappings and scalars.
"""

from . import timefmt
from .convert import CopyService, DefaultCopyService
from .copier import CopyStats, copy
from .lib import get_settings, init, settings, stop
from .setting import Settings
from .slot import Ref, Slot, SourceValue
from .typing import (
    Float32,
    Float64,
    Int8,
    Int16,
    Int32,
    Int64,
    Shape,
    Uint8,
    Uint16,
    Uint32,
    Uint64,
    analyze_type_info,
    shape_of,
)
from .validation import SettingsError

__all__ = [
    # Submodules
    "timefmt",
    # Copying
    "copy",
    "CopyStats",
    "CopyService",
    "DefaultCopyService",
    "Ref",
    "Slot",
    "SourceValue",
    # Settings
    "Settings",
    "SettingsError",
    "init",
    "settings",
    "get_settings",
    "stop",
    # Typing
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "Uint8",
    "Uint16",
    "Uint32",
    "Uint64",
    "Float32",
    "Float64",
    "Shape",
    "analyze_type_info",
    "shape_of",
]
