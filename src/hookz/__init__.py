"""
Hookz - Composable Conditional Service Hooks

A Python library for composing the before/after hooks of a service call.
Hooks are plain functions (sync or async) that take the call's context,
and optionally the service they run on, and mutate the context in place.
Hookz combines them into sequences and decision trees.

Combinators:
    combine(a, b, ...)          = run hooks in order
    iff(p, a, b).else_(c)       = run a, b if p is truthy, else c
    iff_else(p, [a, b], c)      = same, both branches up front
    unless(p, a)                = run a if p is falsy
    when                        = alias of iff

Predicates:
    is_provider("rest", ...)    = which transport called the service
    is_not(p)                   = negation
    some(p, q, ...)             = any truthy (evaluated concurrently)
    every(p, q, ...)            = all truthy (evaluated concurrently)

Example:
    from hookz import HookContext, iff, is_provider, serialize, soft_delete

    def strip_password(ctx):
        ctx.result.pop("password", None)

    before_all = soft_delete()
    after_get = iff(is_provider("external"), strip_password).else_(
        serialize({"exclude": "internal_notes"})
    )

    ctx = HookContext("get", "after", id=1, result=item, params={"provider": "rest"})
    ctx = await after_get.run(ctx, users_service)
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = [
    # Context
    "HookContext",
    "Service",
    "METHODS",
    "HOOK_TYPES",
    # Errors
    "HookzError",
    "BadRequest",
    "NotFound",
    "MethodNotAllowed",
    # Steps & combinators
    "Step",
    "Hook",
    "hook",
    "as_step",
    "combine",
    "iff_else",
    "iff",
    "when",
    "unless",
    # Predicates
    "Condition",
    "evaluate_predicate",
    "Predicate",
    "PredicateCombinator",
    "predicate",
    "is_not",
    "is_provider",
    "some",
    "every",
    # Context utilities
    "get_by_dot",
    "set_by_dot",
    "delete_by_dot",
    "get_items",
    "replace_items",
    "check_context",
    # Hooks
    "soft_delete",
    "traverse",
    "TraverseState",
    "serialize",
    # Tracing
    "TraceHook",
    "TraceConfig",
    "use_tracing",
    "run_traced",
    "PrintHook",
    "LoggingHook",
    "OpenTelemetryHook",
    # Configuration
    "Registry",
    "ExpressionParser",
    "parse_expression",
]

from hookz._adapter import Condition, evaluate_predicate
from hookz._context import HookContext, Service
from hookz._core import (
    Hook,
    Step,
    as_step,
    combine,
    hook,
    iff,
    iff_else,
    run_traced,
    unless,
    when,
)
from hookz._errors import BadRequest, HookzError, MethodNotAllowed, NotFound
from hookz._predicates import (
    Predicate,
    PredicateCombinator,
    every,
    is_not,
    is_provider,
    predicate,
    some,
)
from hookz._registry import ExpressionParser, Registry, parse_expression
from hookz._serialize import serialize
from hookz._soft_delete import soft_delete
from hookz._tracing import (
    LoggingHook,
    OpenTelemetryHook,
    PrintHook,
    TraceConfig,
    TraceHook,
    use_tracing,
)
from hookz._traverse import TraverseState, traverse
from hookz._types import HOOK_TYPES, METHODS
from hookz._utils import (
    check_context,
    delete_by_dot,
    get_by_dot,
    get_items,
    replace_items,
    set_by_dot,
)
