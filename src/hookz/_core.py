"""Steps and the sequential/conditional composition engine."""

from __future__ import annotations

import time
from abc import ABC
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic

from hookz._adapter import Condition, bind_service, settle
from hookz._errors import MethodNotAllowed
from hookz._predicates import is_not
from hookz._tracing import (
    TraceConfig,
    TraceHook,
    _current_trace,
    _elapsed_ms,
    _Trace,
)
from hookz._types import T

# =============================================================================
# Steps
# =============================================================================


class Step(ABC, Generic[T]):
    """
    Base class for all steps.

    A step takes a context and the service it runs on, and returns the
    (possibly replaced) context. Steps form a closed tree of three kinds:
        Hook      = a leaf hook function
        combine   = run child steps in order
        iff_else  = evaluate a predicate and run one of two branches

    Steps are immutable and hold no per-call state, so one tree can serve
    many concurrent calls.

    Composition:
        a >> b = combine(a, b)

    Tracing:
        Use `with use_tracing(hook):` to trace all run() calls within scope.
        Or use `run_traced(step, ctx, hook)` for explicit tracing.
    """

    async def run(self, ctx: T, service: Any = None) -> T:
        """
        Run the step against ctx, bound to service.

        If tracing is enabled via use_tracing(), this will automatically
        trace the execution.
        """
        return await _interpret(self, ctx, service, _current_trace(), 0)

    def __rshift__(self, other: Any) -> Step[T]:
        """a >> b = run b after a."""
        return combine(self, other)

    async def __call__(self, ctx: T, service: Any = None) -> T:
        """Shorthand for run()."""
        return await self.run(ctx, service)


class Hook(Step[T]):
    """
    A leaf step wrapping a hook function.

    The function is called with (ctx) or, if it declares a second positional
    parameter, with (ctx, service). It may be sync or async. A return value
    of the same type as the context replaces the context; anything else
    (usually None) keeps the current one.

    Example:
        def set_created_at(ctx):
            ctx.data["created_at"] = now()

        step = Hook(set_created_at)
        ctx = await step.run(ctx)
    """

    def __init__(self, fn: Callable[..., Any], name: str | None = None):
        if not callable(fn):
            raise MethodNotAllowed(f"Expected a hook function, got {fn!r}")
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "hook")
        self._call = bind_service(fn)

    def __repr__(self) -> str:
        return f"Hook({self.name})"


def hook(fn: Callable[..., Any]) -> Hook[Any]:
    """
    Decorator to turn a hook function into a Hook step.

    Example:
        @hook
        def lowercase_email(ctx):
            ctx.data["email"] = ctx.data["email"].lower()

        @hook
        async def load_owner(ctx, service):
            ctx.params["owner"] = await service.get(ctx.data["owner_id"])

        before_create = lowercase_email >> load_owner
    """
    return Hook(fn, fn.__name__)


@dataclass(frozen=True)
class _Combine(Step[T]):
    steps: tuple[Step[T], ...]

    def __rshift__(self, other: Any) -> Step[T]:
        return _Combine(self.steps + (as_step(other),))

    def __repr__(self) -> str:
        return f"combine({', '.join(map(repr, self.steps))})"


@dataclass(frozen=True)
class _IfElse(Step[T]):
    """
    Conditional step: run then_branch if the condition is truthy, else else_branch.

    A missing branch is a no-op that returns the context unchanged.
    """

    condition: Condition
    then_branch: _Combine[T] | None
    else_branch: _Combine[T] | None = None

    def else_(self, *steps: Any) -> _IfElse[T]:
        """
        Attach the false branch, returning a new conditional.

        Example:
            iff(is_provider("rest"), hook_a, hook_b).else_(hook_c)

        Raises:
            MethodNotAllowed: the conditional already has a false branch
        """
        if self.else_branch is not None:
            raise MethodNotAllowed("An else branch is already attached. (iff)")
        return _IfElse(self.condition, self.then_branch, combine(*steps))

    def __repr__(self) -> str:
        return f"iff_else({self.condition.name}, {self.then_branch!r}, {self.else_branch!r})"


def as_step(obj: Any) -> Step[Any]:
    """
    Normalize a hook function, a Step, or a list of them into a Step.

    Raises:
        MethodNotAllowed: obj is neither callable nor a list of callables
    """
    if isinstance(obj, Step):
        return obj
    if isinstance(obj, (list, tuple)):
        return combine(*obj)
    if callable(obj):
        return Hook(obj)
    raise MethodNotAllowed(f"Expected a hook function or step, got {obj!r}")


def _branch(steps: Any) -> _Combine[Any] | None:
    if steps is None:
        return None
    if isinstance(steps, (list, tuple)):
        return combine(*steps)
    return combine(steps)


# =============================================================================
# Interpreter
# =============================================================================


def step_name(step: Step[Any]) -> str:
    """Get a human-readable name for a step."""
    if isinstance(step, Hook):
        return f"Hook({step.name})"
    if isinstance(step, _Combine):
        return "COMBINE"
    if isinstance(step, _IfElse):
        return "IFF"
    return repr(step)


async def _interpret(
    step: Step[T], ctx: T, service: Any, trace: _Trace | None, depth: int
) -> T:
    """Run one node of a step tree, with tracing when active."""
    composite = not isinstance(step, Hook)
    if trace is None or not trace.covers(composite, depth):
        return await _dispatch(step, ctx, service, trace, depth)

    name = step_name(step)
    span = trace.hook.on_enter(name, ctx, depth)
    start = time.perf_counter()
    try:
        result = await _dispatch(step, ctx, service, trace, depth)
    except BaseException as e:
        trace.hook.on_error(span, name, e, _elapsed_ms(start), depth)
        raise
    trace.hook.on_exit(span, name, True, _elapsed_ms(start), depth)
    return result


async def _dispatch(
    step: Step[T], ctx: T, service: Any, trace: _Trace | None, depth: int
) -> T:
    if isinstance(step, Hook):
        result = await settle(step._call(ctx, service))
        # Only a value of the context's own type replaces it
        return result if isinstance(result, type(ctx)) else ctx

    if isinstance(step, _Combine):
        for child in step.steps:
            ctx = await _interpret(child, ctx, service, trace, depth + 1)
        return ctx

    if isinstance(step, _IfElse):
        ok = await _check(step.condition, ctx, service, trace, depth + 1)
        branch = step.then_branch if ok else step.else_branch
        if branch is None:
            return ctx
        return await _interpret(branch, ctx, service, trace, depth + 1)

    raise TypeError(f"Unknown step type: {type(step).__name__}")


async def _check(
    condition: Condition, ctx: Any, service: Any, trace: _Trace | None, depth: int
) -> bool:
    if trace is None or not trace.covers(False, depth):
        return await condition.resolve(ctx, service)

    name = f"Predicate({condition.name})"
    span = trace.hook.on_enter(name, ctx, depth)
    start = time.perf_counter()
    try:
        ok = await condition.resolve(ctx, service)
    except BaseException as e:
        trace.hook.on_error(span, name, e, _elapsed_ms(start), depth)
        raise
    trace.hook.on_exit(span, name, ok, _elapsed_ms(start), depth)
    return ok


async def run_traced(
    step: Step[T],
    ctx: T,
    hook: TraceHook,
    service: Any = None,
    config: TraceConfig | None = None,
) -> T:
    """
    Run a step with explicit tracing.

    Args:
        step: The step to run
        ctx: Context to run it on
        hook: TraceHook to receive events
        service: Service the step is bound to
        config: Optional TraceConfig

    Returns:
        The resulting context

    Example:
        ctx = await run_traced(before_create, ctx, PrintHook(), service)
    """
    trace = _Trace(hook, config or TraceConfig())
    return await _interpret(as_step(step), ctx, service, trace, 0)


# =============================================================================
# Combinators
# =============================================================================


def combine(*steps: Any) -> _Combine[Any]:
    """
    Run several hooks as one, in order.

    Each step gets the context returned by the previous one and is awaited
    before the next starts. The first exception aborts the sequence.
    combine() with no steps returns the context unchanged.

    Example 1
        service_hooks = {"before": {"create": combine(hook1, hook2, hook3)}}

    Example 2 - called within a custom hook function
        async def my_hook(ctx, service):
            ctx = await combine(hook1, hook2).run(ctx, service)
            ...
    """
    return _Combine(tuple(as_step(step) for step in steps))


def iff_else(
    predicate: Any, true_steps: Any, false_steps: Any = None
) -> _IfElse[Any]:
    """
    Conditionally run one or another set of hooks.

    Args:
        predicate: bool, awaitable, or function (ctx[, service]) returning
            a bool or an awaitable bool
        true_steps: Step, hook function or list run when predicate is truthy
        false_steps: Step, hook function or list run when it is falsy
            (None = no-op)

    Example:
        iff_else(is_server, [hook_a, hook_b], hook_c)

        iff_else(is_server,
            [hook_a, iff_else(lambda ctx: ctx.method == "create", hook1, [hook2, hook3]), hook_b],
            iff_else(is_provider("rest"), [hook4, hook5], hook6),
        )
    """
    return _IfElse(Condition(predicate), _branch(true_steps), _branch(false_steps))


def iff(predicate: Any, *steps: Any) -> _IfElse[Any]:
    """
    Conditionally run hooks, with an optional chained else branch.

    Example:
        iff(is_server, hook_a, hook_b).else_(hook_c)

        iff(is_server,
            hook_a,
            iff(is_provider("rest"), hook1, hook2, hook3).else_(hook4, hook5),
            hook_b,
        ).else_(
            iff(lambda ctx: ctx.method == "create", hook6, hook7)
        )
    """
    return iff_else(predicate, list(steps), None)


when = iff


def unless(predicate: Any, *steps: Any) -> _IfElse[Any]:
    """
    Run hooks when the predicate is falsy.

    Equivalent to iff(is_not(predicate), *steps); a non-callable predicate
    is negated directly.

    Example:
        unless(is_provider("server"), hook_a, hook_b)
    """
    if callable(predicate):
        return iff(is_not(predicate), *steps)
    return iff(not predicate, *steps)
