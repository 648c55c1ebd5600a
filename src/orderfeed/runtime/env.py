from __future__ import annotations

import os
from typing import Iterable, Mapping, Optional

EnvMapping = Mapping[str, str]

ENV_PREFIX = "ORDERFEED_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def env_name(key: str, *, prefix: str = ENV_PREFIX) -> str:
    """Return the prefixed, upper-cased variable name for a config key."""

    return f"{prefix}{key.upper()}"


def _lookup(name: str, env: EnvMapping | None, aliases: Iterable[str] | None) -> Optional[str]:
    mapping = env if env is not None else os.environ
    for key in (name, *(aliases or ())):
        value = mapping.get(key)
        if value is not None and value.strip() != "":
            return value
    return None


def get_str(
    name: str,
    default: Optional[str],
    *,
    env: EnvMapping | None = None,
    aliases: Iterable[str] | None = None,
) -> Optional[str]:
    value = _lookup(name, env, aliases)
    return default if value is None else value


def get_bool(
    name: str,
    default: bool,
    *,
    env: EnvMapping | None = None,
    aliases: Iterable[str] | None = None,
) -> bool:
    value = _lookup(name, env, aliases)
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def get_int(
    name: str,
    default: int,
    *,
    env: EnvMapping | None = None,
    aliases: Iterable[str] | None = None,
) -> int:
    value = _lookup(name, env, aliases)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_float(
    name: str,
    default: float,
    *,
    env: EnvMapping | None = None,
    aliases: Iterable[str] | None = None,
) -> float:
    value = _lookup(name, env, aliases)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


__all__ = [
    "ENV_PREFIX",
    "EnvMapping",
    "env_name",
    "get_bool",
    "get_float",
    "get_int",
    "get_str",
]
