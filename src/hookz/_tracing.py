"""Tracing hooks for step execution."""

from __future__ import annotations

import asyncio
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

# Optional OpenTelemetry imports - only needed if using OpenTelemetryHook
try:
    from opentelemetry.trace import (
        Link as _Link,
    )
    from opentelemetry.trace import (
        Status as _Status,
    )
    from opentelemetry.trace import (
        StatusCode as _StatusCode,
    )
    from opentelemetry.trace import (
        set_span_in_context as _set_span_in_context,
    )

    _HAS_OPENTELEMETRY = True
except ImportError:
    _HAS_OPENTELEMETRY = False
    _Link = None
    _Status = None
    _StatusCode = None
    _set_span_in_context = None


@runtime_checkable
class TraceHook(Protocol):
    """
    Protocol for trace hooks.

    Implement this to integrate with logging, OpenTelemetry, or other
    tracing systems.

    Example:
        class MyHook:
            def on_enter(self, name, ctx, depth):
                print(f"{'  ' * depth}-> {name}")
                return None  # span token

            def on_exit(self, span, name, ok, duration_ms, depth):
                print(f"{'  ' * depth}<- {name} ({duration_ms:.2f}ms)")

            def on_error(self, span, name, error, duration_ms, depth):
                print(f"{'  ' * depth}<- {name} ERROR: {error}")
    """

    def on_enter(self, name: str, ctx: Any, depth: int) -> Any:
        """
        Called before running a step or evaluating a predicate.

        Args:
            name: Name/description of the step
            ctx: Current context
            depth: Nesting depth (0 = root)

        Returns:
            Span token to pass to on_exit (can be None)
        """
        ...

    def on_exit(
        self, span: Any, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        """
        Called after a step completes.

        Args:
            span: Token returned from on_enter
            name: Name/description of the step
            ok: True for completed steps; the resolved value for predicates
            duration_ms: Execution time in milliseconds
            depth: Nesting depth
        """
        ...

    def on_error(
        self, span: Any, name: str, error: BaseException, duration_ms: float, depth: int
    ) -> None:
        """
        Called if a step or predicate raises or is cancelled. The error is
        re-raised afterwards.

        Args:
            span: Token returned from on_enter
            name: Name/description of the step
            error: The exception that was raised
            duration_ms: Execution time in milliseconds
            depth: Nesting depth
        """
        ...


@dataclass
class TraceConfig:
    """
    Configuration for tracing behavior.

    Attributes:
        nested: If True, trace children of sequences and conditionals
        max_depth: Maximum depth to trace (None = unlimited)
        include_leaf_only: If True, only trace hooks and predicates
    """

    nested: bool = True
    max_depth: int | None = None
    include_leaf_only: bool = False


# Context variables for global tracing
_trace_hook: ContextVar[TraceHook | None] = ContextVar("trace_hook", default=None)
_trace_config: ContextVar[TraceConfig] = ContextVar(
    "trace_config", default=TraceConfig()
)


@contextmanager
def use_tracing(hook: TraceHook, config: TraceConfig | None = None):
    """
    Context manager to enable tracing for all step runs in scope.

    The setting is task-local: steps started from other asyncio tasks
    created before entering the block are not traced.

    Example:
        with use_tracing(LoggingHook(logger)):
            await before_create.run(ctx, service)

        with use_tracing(PrintHook(), TraceConfig(max_depth=2)):
            await hooks.run(ctx)
    """
    hook_token = _trace_hook.set(hook)
    config_token = _trace_config.set(config or TraceConfig())
    try:
        yield
    finally:
        _trace_config.reset(config_token)
        _trace_hook.reset(hook_token)


@dataclass
class _Trace:
    """Active tracing state for one run."""

    hook: TraceHook
    config: TraceConfig

    def covers(self, composite: bool, depth: int) -> bool:
        if self.config.max_depth is not None and depth > self.config.max_depth:
            return False
        if not self.config.nested and depth > 0:
            return False
        return not (self.config.include_leaf_only and composite)


def _current_trace() -> _Trace | None:
    hook = _trace_hook.get()
    if hook is None:
        return None
    return _Trace(hook, _trace_config.get())


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


# =============================================================================
# Built-in Trace Hooks
# =============================================================================


def _is_predicate(name: str) -> bool:
    return name.startswith("Predicate(")


def _describe_ctx(ctx: Any) -> str:
    method = getattr(ctx, "method", None)
    if method is None:
        return repr(ctx)
    return f"{method}/{getattr(ctx, 'type', '?')}"


def _describe_error(error: BaseException) -> str:
    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


class PrintHook:
    """
    Simple trace hook that prints to stdout.

    Predicates show the value they resolved to; steps show a check mark
    when they complete and a cross with the error when they fail.

    Example:
        with use_tracing(PrintHook(show_ctx=True)):
            await hooks.run(ctx)

        # Output:
        # -> IFF [get/after]
        #   -> Predicate(is_provider('rest')) [get/after]
        #   <- Predicate(is_provider('rest')) = True (0.02ms)
        #   -> COMBINE [get/after]
        #     -> Hook(strip_password) [get/after]
        #     <- Hook(strip_password) ✔ (0.01ms)
        #   <- COMBINE ✔ (0.03ms)
        # <- IFF ✔ (0.08ms)
    """

    def __init__(self, indent: str = "  ", show_ctx: bool = False):
        self.indent = indent
        self.show_ctx = show_ctx

    def on_enter(self, name: str, ctx: Any, depth: int) -> None:
        suffix = f" [{_describe_ctx(ctx)}]" if self.show_ctx else ""
        print(f"{self.indent * depth}-> {name}{suffix}")

    def on_exit(
        self, span: None, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        outcome = f"= {ok}" if _is_predicate(name) else "✔"
        print(f"{self.indent * depth}<- {name} {outcome} ({duration_ms:.2f}ms)")

    def on_error(
        self, span: None, name: str, error: BaseException, duration_ms: float, depth: int
    ) -> None:
        print(
            f"{self.indent * depth}<- {name} ✗ {_describe_error(error)} "
            f"({duration_ms:.2f}ms)"
        )


class LoggingHook:
    """
    Trace hook that logs to a Python logger.

    Enter/exit records use `level`; failures are logged at ERROR, and
    cancellations (a losing some()/every() constituent, a cancelled task)
    at `level` since they are not faults of the step itself.

    Example:
        import logging
        logger = logging.getLogger("hookz")

        with use_tracing(LoggingHook(logger)):
            await hooks.run(ctx, service)
    """

    def __init__(self, logger, level: int = 10):  # 10 = DEBUG
        self.logger = logger
        self.level = level

    def on_enter(self, name: str, ctx: Any, depth: int) -> None:
        self.logger.log(
            self.level, "[ENTER] %s (%s, depth=%d)", name, _describe_ctx(ctx), depth
        )

    def on_exit(
        self, span: None, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        if _is_predicate(name):
            self.logger.log(self.level, "[EXIT] %s = %s (%.2fms)", name, ok, duration_ms)
        else:
            self.logger.log(self.level, "[EXIT] %s -> OK (%.2fms)", name, duration_ms)

    def on_error(
        self, span: None, name: str, error: BaseException, duration_ms: float, depth: int
    ) -> None:
        if isinstance(error, asyncio.CancelledError):
            self.logger.log(self.level, "[CANCELLED] %s (%.2fms)", name, duration_ms)
            return
        self.logger.error("[ERROR] %s -> %r (%.2fms)", name, error, duration_ms)


class OpenTelemetryHook:
    """
    OpenTelemetry trace hook with:

    - Parent/child span hierarchy mirroring the step tree
    - Depth-based span suppression
    - Predicate-as-event optimization
    - Optional sibling span linking

    Keeps a span stack per instance, so use one instance per concurrently
    running chain.

    Requires: pip install opentelemetry-api
    """

    def __init__(
        self,
        tracer,
        *,
        max_span_depth: int | None = None,
        link_sibling_spans: bool = True,
        predicates_as_events: bool = False,
    ):
        if not _HAS_OPENTELEMETRY:
            raise ImportError(
                "OpenTelemetry is not installed. "
                "Install it with: pip install opentelemetry-api"
            )
        self.tracer = tracer
        self.max_span_depth = max_span_depth
        self.link_sibling_spans = link_sibling_spans
        self.predicates_as_events = predicates_as_events

        self._span_stack: list[Any] = []
        self._last_span_at_depth: dict[int, Any] = {}

    def on_enter(self, name: str, ctx: Any, depth: int) -> Any:
        assert _set_span_in_context is not None
        assert _Link is not None

        if self.max_span_depth is not None and depth > self.max_span_depth:
            return None

        parent = self._span_stack[-1] if self._span_stack else None
        parent_ctx = _set_span_in_context(parent) if parent else None

        if self.predicates_as_events and parent and _is_predicate(name):
            parent.add_event(
                "predicate.evaluate",
                {"hookz.predicate": name, "hookz.depth": depth},
            )
            return None

        links = []
        if self.link_sibling_spans and depth in self._last_span_at_depth:
            links.append(_Link(self._last_span_at_depth[depth].get_span_context()))

        span = self.tracer.start_span(
            name,
            context=parent_ctx,
            links=links or None,
        )
        span.set_attribute("hookz.name", name)
        span.set_attribute("hookz.depth", depth)
        span.set_attribute("hookz.node_type", self._node_type(name))

        self._span_stack.append(span)
        self._last_span_at_depth[depth] = span
        return span

    def on_exit(
        self,
        span: Any,
        name: str,
        ok: bool,
        duration_ms: float,
        depth: int,
    ) -> None:
        if span is None:
            return

        span.set_attribute("hookz.result", ok)
        span.set_attribute("hookz.duration_ms", duration_ms)
        span.end()
        self._span_stack.pop()

    def on_error(
        self,
        span: Any,
        name: str,
        error: BaseException,
        duration_ms: float,
        depth: int,
    ) -> None:
        if span is None:
            return

        assert _Status is not None
        assert _StatusCode is not None

        span.set_attribute("hookz.duration_ms", duration_ms)
        span.record_exception(error)
        span.set_status(_Status(_StatusCode.ERROR, str(error)))
        span.end()
        self._span_stack.pop()

    def _node_type(self, name: str) -> str:
        if name in {"COMBINE", "IFF"}:
            return "composite"
        if _is_predicate(name):
            return "predicate"
        return "hook"
