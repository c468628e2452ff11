"""Helpers for calling async code from synchronous entry points (CLI)."""

from __future__ import annotations

import asyncio
import functools
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

ParamSpecT = ParamSpec("ParamSpecT")
ReturnT = TypeVar("ReturnT")


def run_(async_function: Callable[ParamSpecT, Coroutine[Any, Any, ReturnT]]) -> Callable[ParamSpecT, ReturnT]:
    """Convert an async function into a blocking one.

    Args:
        async_function: The coroutine function to wrap

    Returns:
        A function that runs the coroutine on a fresh event loop
    """

    @functools.wraps(async_function)
    def wrapper(*args: ParamSpecT.args, **kwargs: ParamSpecT.kwargs) -> ReturnT:
        partial_f = functools.partial(async_function, *args, **kwargs)
        return asyncio.run(partial_f())

    return wrapper
