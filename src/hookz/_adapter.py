"""Normalization of hook and predicate calls."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


def takes_service(fn: Callable[..., Any]) -> bool:
    """
    True if fn accepts a second positional argument for the service.

    The second parameter counts only when it is required or named
    `service`, so defaults like `lambda ctx, n=n: ...` keep their value.
    """
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return False

    positional = []
    for param in params:
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
        if param.kind in _POSITIONAL:
            positional.append(param)
    if len(positional) < 2:
        return False
    second = positional[1]
    return second.default is inspect.Parameter.empty or second.name == "service"


def bind_service(fn: Callable[..., Any]) -> Callable[[Any, Any], Any]:
    """
    Return a (ctx, service) callable for fn.

    Functions declaring a second positional parameter receive the service;
    the others are called with the context only.
    """
    if takes_service(fn):
        return fn

    def call(ctx: Any, service: Any) -> Any:
        return fn(ctx)

    return call


async def settle(value: Any) -> Any:
    """Await value if it is awaitable, otherwise return it as is."""
    if inspect.isawaitable(value):
        return await value
    return value


class Condition:
    """
    A predicate normalized for evaluation against (ctx, service).

    Accepts a bool (or any plain value, judged by truthiness), an awaitable,
    or a callable returning either. Built once and reused across calls;
    holds no per-call state.

    Note:
        A coroutine object can only be awaited once. Use an asyncio.Future
        or a callable when the same condition is evaluated repeatedly.
    """

    __slots__ = ("raw", "name", "_call")

    def __init__(self, raw: Any):
        if isinstance(raw, Condition):
            raw = raw.raw
        self.raw = raw
        self._call = bind_service(raw) if callable(raw) else None
        self.name = (
            getattr(raw, "name", None) or getattr(raw, "__name__", None) or repr(raw)
        )

    def check(self, ctx: Any, service: Any = None) -> Any:
        """Evaluate without awaiting: returns a value or an awaitable."""
        if self._call is None:
            return self.raw
        return self._call(ctx, service)

    async def resolve(self, ctx: Any, service: Any = None) -> bool:
        """Evaluate and await, returning a bool."""
        return bool(await settle(self.check(ctx, service)))

    def __repr__(self) -> str:
        return f"Condition({self.name})"


async def evaluate_predicate(predicate: Any, ctx: Any, service: Any = None) -> bool:
    """
    Resolve any predicate form to a bool.

    Example:
        ok = await evaluate_predicate(is_provider("rest"), ctx)
        ok = await evaluate_predicate(True, ctx)
        ok = await evaluate_predicate(async_check, ctx, service)

    Exceptions raised by the predicate propagate unchanged.
    """
    return await Condition(predicate).resolve(ctx, service)
