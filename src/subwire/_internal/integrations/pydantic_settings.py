from __future__ import annotations

import importlib
from typing import Any

from subwire._internal.type_checks import is_runtime_class


def _load_settings_base() -> type[Any] | None:
    # Optional extra; absent installs disable the integration.
    try:
        candidate = importlib.import_module("pydantic_settings").BaseSettings
    except (ImportError, AttributeError):
        return None
    return candidate if isinstance(candidate, type) else None


SETTINGS_BASE: type[Any] | None = _load_settings_base()


def is_pydantic_settings_subclass(candidate: object) -> bool:
    """Return whether a class is a ``pydantic_settings.BaseSettings`` model.

    Settings models read their values from the environment, so the concrete-type
    source builds them with a zero-argument factory and shares one instance per
    container instead of treating their fields as constructor dependencies.
    Returns ``False`` for every candidate when ``pydantic-settings`` is not
    installed.

    Args:
        candidate: Object to test.

    """
    if SETTINGS_BASE is None or not is_runtime_class(candidate):
        return False
    return candidate is not SETTINGS_BASE and issubclass(candidate, SETTINGS_BASE)


__all__ = [
    "SETTINGS_BASE",
    "is_pydantic_settings_subclass",
]
