"""Environment variable parsing helpers used by the settings dataclasses."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar, cast

if TYPE_CHECKING:
    from collections.abc import Callable

ParsedType = TypeVar("ParsedType")

TRUE_VALUES = {"True", "true", "1", "yes", "Y", "T", "on"}


def get_config_val(key: str, default: ParsedType, type_hint: Any = None) -> ParsedType:
    """Parse the environment variable ``key`` into the type of ``default``.

    Args:
        key: Environment variable name
        default: Value returned when the variable is unset; its type drives parsing
        type_hint: Explicit target type for values whose default is ambiguous (lists)

    Returns:
        The parsed value
    """
    str_value = os.getenv(key)
    if str_value is None:
        return default
    if type(default) is bool or type_hint is bool:
        return cast("ParsedType", str_value in TRUE_VALUES)
    if type(default) is int or type_hint is int:
        return cast("ParsedType", int(str_value))
    if type(default) is float or type_hint is float:
        return cast("ParsedType", float(str_value))
    if isinstance(default, Path) or type_hint is Path:
        return cast("ParsedType", Path(str_value))
    if isinstance(default, list) or type_hint is list:
        if str_value.startswith("[") and str_value.endswith("]"):
            return cast("ParsedType", json.loads(str_value))
        return cast("ParsedType", [item.strip() for item in str_value.split(",") if item.strip()])
    return cast("ParsedType", str_value)


def get_env(key: str, default: ParsedType, type_hint: Any = None) -> Callable[[], ParsedType]:
    """Return a ``default_factory`` reading ``key`` from the environment."""
    return lambda: get_config_val(key=key, default=default, type_hint=type_hint)
