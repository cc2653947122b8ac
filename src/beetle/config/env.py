"""Environment variable loaders for configuration."""

from __future__ import annotations

import os

from .errors import ConfigurationError

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _read(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def env_flag(name: str, *, default: bool = False) -> bool:
    """Read a boolean flag, treating blank values as unset."""

    value = _read(name)
    if value is None:
        return default
    normalized = value.lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(name, f"expected a boolean, got {value!r}")


def env_int(name: str, *, default: int | None = None) -> int | None:
    """Read a non-negative integer, treating blank values as unset."""

    value = _read(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ConfigurationError(name, f"expected an integer, got {value!r}") from exc
    if parsed < 0:
        raise ConfigurationError(name, f"must be non-negative, got {parsed}")
    return parsed
