"""Predicate combinators: negation, some/every and provider checks."""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from hookz._adapter import Condition, bind_service
from hookz._errors import MethodNotAllowed


class PredicateCombinator(ABC):
    """
    Base class for predicate objects.

    A predicate object is an ordinary callable `(ctx, service=None)` so it
    can be passed anywhere a predicate function is accepted. It also
    composes with operators:
        &  = every (all must be truthy)
        |  = some (at least one must be truthy)
        ~  = is_not
    """

    name: str

    @abstractmethod
    def __call__(self, ctx: Any, service: Any = None) -> Any: ...

    def __and__(self, other: Any) -> PredicateCombinator:
        return every(self, other)

    def __or__(self, other: Any) -> PredicateCombinator:
        return some(self, other)

    def __invert__(self) -> PredicateCombinator:
        return is_not(self)

    def __repr__(self) -> str:
        return self.name


class Predicate(PredicateCombinator):
    """
    Wraps a predicate function so it gains the combinator operators.

    Example:
        is_admin = Predicate(lambda ctx: ctx.params.get("user", {}).get("admin"))
        iff(is_admin | is_provider("server"), strip_secrets)
    """

    def __init__(self, fn: Callable[..., Any], name: str | None = None):
        if not callable(fn):
            raise MethodNotAllowed("Expected function as param. (Predicate)")
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "predicate")
        self._call = bind_service(fn)

    def __call__(self, ctx: Any, service: Any = None) -> Any:
        return self._call(ctx, service)


def predicate(fn: Callable[..., Any]) -> Predicate:
    """
    Decorator turning a function into a composable Predicate.

    Example:
        @predicate
        def is_create(ctx):
            return ctx.method == "create"

        @predicate
        async def owns_item(ctx, service):
            item = await service.get(ctx.id)
            return item["owner"] == ctx.params["user"]["id"]

        iff(is_create & ~owns_item, reject)
    """
    return Predicate(fn, fn.__name__)


class _Not(PredicateCombinator):
    def __init__(self, inner: Any):
        self.inner = Condition(inner)
        self.name = f"NOT({self.inner.name})"

    def __call__(self, ctx: Any, service: Any = None) -> Any:
        result = self.inner.check(ctx, service)
        if not inspect.isawaitable(result):
            return not result
        return _negate(result)


async def _negate(awaitable: Any) -> bool:
    return not await awaitable


async def _gather(conditions: tuple[Condition, ...], ctx: Any, service: Any) -> list[bool]:
    """Resolve conditions concurrently; the first failure wins."""
    tasks = [
        asyncio.ensure_future(condition.resolve(ctx, service))
        for condition in conditions
    ]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


class _Some(PredicateCombinator):
    def __init__(self, predicates: tuple[Any, ...]):
        self.conditions = tuple(Condition(p) for p in predicates)
        self.name = f"SOME({', '.join(c.name for c in self.conditions)})"

    async def __call__(self, ctx: Any, service: Any = None) -> bool:
        results = await _gather(self.conditions, ctx, service)
        return any(results)


class _Every(PredicateCombinator):
    def __init__(self, predicates: tuple[Any, ...]):
        self.conditions = tuple(Condition(p) for p in predicates)
        self.name = f"EVERY({', '.join(c.name for c in self.conditions)})"

    async def __call__(self, ctx: Any, service: Any = None) -> bool:
        results = await _gather(self.conditions, ctx, service)
        return all(results)


class _Provider(PredicateCombinator):
    def __init__(self, providers: tuple[str, ...]):
        self.providers = providers
        self.name = f"is_provider({', '.join(map(repr, providers))})"

    def __call__(self, ctx: Any, service: Any = None) -> bool:
        params = getattr(ctx, "params", None) or {}
        current = params.get("provider")
        return any(
            provider == current
            or (provider == "server" and not current)
            or (provider == "external" and bool(current))
            for provider in self.providers
        )


def is_not(predicate: Callable[..., Any]) -> PredicateCombinator:
    """
    Negate a predicate.

    The result keeps the shape of the wrapped predicate: a plain bool when
    it returns a plain value, an awaitable bool when it returns an awaitable.

    Example:
        iff(is_not(is_provider("rest")), remove_fields("password"))

    Raises:
        MethodNotAllowed: predicate is not callable
    """
    if not callable(predicate):
        raise MethodNotAllowed("Expected function as param. (is_not)")
    return _Not(predicate)


def some(*predicates: Any) -> PredicateCombinator:
    """
    Predicate that is true if at least one of the predicates is truthy.

    All predicates are evaluated concurrently against the same context and
    service. If one raises, that exception propagates and the evaluations
    still running are cancelled. some() with no predicates is false.

    Example:
        iff(some(is_admin, owns_item), allow_edit)

        # inside a custom hook
        if await some(check_a, check_b)(ctx, service):
            ...
    """
    return _Some(predicates)


def every(*predicates: Any) -> PredicateCombinator:
    """
    Predicate that is true if all of the predicates are truthy.

    Evaluation is concurrent with the same failure rules as some().
    every() with no predicates is true.
    """
    return _Every(predicates)


def is_provider(*providers: str) -> PredicateCombinator:
    """
    Predicate checking which transport called the service method.

    Args:
        providers: Names to accept:
            "server"   = called from the server (no provider tag)
            "external" = called through any transport
            any other  = that provider, e.g. "rest" or "socketio"

    Example:
        iff(is_provider("external"), remove_fields("password"))

    Raises:
        MethodNotAllowed: no provider names were given
    """
    if not providers:
        raise MethodNotAllowed("Calling iff() predicate incorrectly. (is_provider)")
    return _Provider(providers)
