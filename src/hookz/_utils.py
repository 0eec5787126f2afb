"""Context utilities: dotted-path access and item extraction."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from hookz._errors import MethodNotAllowed

_MISSING = object()


def _split(path: str) -> list[str]:
    if not path:
        raise ValueError("Path must be a non-empty string")
    return path.split(".")


def _child(obj: Any, part: str, default: Any) -> Any:
    if isinstance(obj, dict):
        return obj.get(part, default)
    if isinstance(obj, list) and part.lstrip("-").isdigit():
        index = int(part)
        if -len(obj) <= index < len(obj):
            return obj[index]
    return default


def get_by_dot(obj: Any, path: str, default: Any = None) -> Any:
    """
    Read a nested field addressed by a dotted path.

    Numeric segments index into lists. Returns `default` when any
    segment along the path is missing.

    Example:
        get_by_dot({"a": {"b": [1, 2]}}, "a.b.1")  # 2
    """
    current = obj
    for part in _split(path):
        current = _child(current, part, _MISSING)
        if current is _MISSING:
            return default
    return current


def set_by_dot(obj: dict[str, Any], path: str, value: Any) -> None:
    """
    Write a nested field addressed by a dotted path.

    Intermediate dicts are created as needed; a non-dict value in the way
    is replaced.
    """
    *parents, leaf = _split(path)
    current = obj
    for part in parents:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = current[part] = {}
        current = nxt
    current[leaf] = value


def delete_by_dot(obj: dict[str, Any], path: str) -> None:
    """Remove the leaf key of a dotted path. Missing paths are ignored."""
    *parents, leaf = _split(path)
    current: Any = obj
    for part in parents:
        current = current.get(part) if isinstance(current, dict) else None
        if current is None:
            return
    if isinstance(current, dict):
        current.pop(leaf, None)


def _is_paginated(ctx: Any) -> bool:
    return (
        ctx.method == "find"
        and isinstance(ctx.result, dict)
        and "data" in ctx.result
    )


def get_items(ctx: Any) -> Any:
    """
    Return the items a hook should work on.

    Before hooks see the input payload (`data`), after hooks the operation
    `result`. Paginated find results ({"total": ..., "data": [...]}) are
    unwrapped to their list of items.
    """
    if ctx.type == "before":
        return ctx.data
    if _is_paginated(ctx):
        return ctx.result["data"]
    return ctx.result


def replace_items(ctx: Any, items: Any) -> None:
    """Store items back where get_items() found them."""
    if ctx.type == "before":
        ctx.data = items
    elif _is_paginated(ctx):
        ctx.result["data"] = items
    else:
        ctx.result = items


def check_context(
    ctx: Any,
    type: str | None = None,
    methods: str | Iterable[str] | None = None,
    label: str = "anonymous",
) -> None:
    """
    Raise MethodNotAllowed unless the hook runs at an allowed point.

    Args:
        ctx: Hook context
        type: Required hook type ("before" or "after"), or None for any
        methods: Allowed method name(s), or None for any
        label: Hook name used in the error message
    """
    if type is not None and ctx.type != type:
        raise MethodNotAllowed(f"The '{label}' hook can only be used as a '{type}' hook.")

    if methods is None:
        return
    allowed = [methods] if isinstance(methods, str) else list(methods)
    if ctx.method not in allowed:
        raise MethodNotAllowed(
            f"The '{label}' hook can only be used on the '{', '.join(allowed)}' "
            f"service method(s)."
        )
