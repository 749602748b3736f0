"""
Library level functions and states.
"""

import threading
import warnings
from typing import Any, Callable, overload

from . import setting

_settings: setting.Settings | None = None
_settings_fn: Callable[[], setting.Settings] | None = None
_settings_lock: threading.Lock = threading.Lock()


@overload
def settings(fn: Callable[[], setting.Settings]) -> Callable[[], setting.Settings]: ...
@overload
def settings(
    fn: None,
) -> Callable[[Callable[[], setting.Settings]], Callable[[], setting.Settings]]: ...
def settings(fn: Callable[[], setting.Settings] | None = None) -> Any:
    """
    Decorate a function that returns a setting.Settings object.
    It registers the function as a settings provider, used by `init()` and
    on first use when `init()` is never called.
    """

    def _inner(fn: Callable[[], setting.Settings]) -> Callable[[], setting.Settings]:
        global _settings_fn  # pylint: disable=global-statement
        with _settings_lock:
            if _settings_fn is not None:
                warnings.warn(
                    f"Setting a new settings function will override the previous one {_settings_fn}."
                )
            _settings_fn = fn
        return fn

    if fn is not None:
        return _inner(fn)
    else:
        return _inner


def _provide_settings() -> setting.Settings:
    if _settings_fn is not None:
        return _settings_fn()
    return setting.Settings.from_env()


def init(settings: setting.Settings | None = None) -> None:
    """
    Initialize the structcopy library.

    If the settings are not provided, they are taken from the registered
    settings provider, or loaded from the environment variables.
    Copy services created afterwards use these settings; services already
    created keep the settings they were created with.
    """
    global _settings  # pylint: disable=global-statement
    with _settings_lock:
        if _settings is not None:
            warnings.warn(
                f"Initializing again will override the previous settings {_settings}."
            )
        _settings = settings if settings is not None else _provide_settings()


def get_settings() -> setting.Settings:
    """Get the process-wide settings, initializing them on first use."""
    global _settings  # pylint: disable=global-statement
    with _settings_lock:
        if _settings is None:
            _settings = _provide_settings()
        return _settings


def stop() -> None:
    """Drop the process-wide settings and the registered settings provider."""
    global _settings, _settings_fn  # pylint: disable=global-statement
    with _settings_lock:
        _settings = None
        _settings_fn = None
