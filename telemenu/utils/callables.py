"""Helpers for user callbacks that may be sync or async."""

import inspect
from typing import Any, Callable


async def call_maybe_async(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call ``fn`` and await the result if it is awaitable."""
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result


def same_callable(left: Callable[..., Any], right: Callable[..., Any]) -> bool:
    """Whether two callables are the same function or closures of one definition."""
    if left is right:
        return True
    left_code = getattr(left, "__code__", None)
    right_code = getattr(right, "__code__", None)
    return left_code is not None and left_code is right_code
