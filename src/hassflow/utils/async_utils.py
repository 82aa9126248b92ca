import inspect
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

R = TypeVar("R")


async def maybe_await(func: Callable[..., R | Awaitable[R]], *args: Any, **kwargs: Any) -> R:
    """Call `func` and await the result if it is awaitable.

    Timer callbacks and automation actions may be plain functions or coroutine functions.
    """
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result  # pyright: ignore[reportReturnType]
