"""Field projection of context items."""

from __future__ import annotations

import copy
from collections.abc import Callable
from typing import Any

from hookz._utils import (
    _MISSING,
    delete_by_dot,
    get_by_dot,
    get_items,
    replace_items,
    set_by_dot,
)

_DIRECTIVES = ("computed", "exclude", "only")
_ALWAYS_KEPT = ("_include", "_elapsed")


def _as_list(value: str | list[str] | None) -> list[str] | None:
    if isinstance(value, str):
        return [value]
    return value


def _serialize_items(items: Any, schema: dict[str, Any], ctx: Any) -> Any:
    if isinstance(items, list):
        return [_serialize_item(item, schema, ctx) for item in items]
    return _serialize_item(items, schema, ctx)


def _serialize_item(item: Any, schema: dict[str, Any], ctx: Any) -> Any:
    if not isinstance(item, dict):
        return item

    computed = {
        name: fn(item, ctx) for name, fn in (schema.get("computed") or {}).items()
    }

    only = _as_list(schema.get("only"))
    if only is not None:
        projected: dict[str, Any] = {}
        for key in [*only, *_ALWAYS_KEPT, *(_as_list(item.get("_include")) or [])]:
            value = get_by_dot(item, key, _MISSING)
            if value is not _MISSING:
                set_by_dot(projected, key, value)
        item = projected

    exclude = _as_list(schema.get("exclude"))
    if exclude:
        item = copy.deepcopy(item)
        for key in exclude:
            delete_by_dot(item, key)

    item = {**item, **computed}
    if computed:
        item["_computed"] = list(computed)

    for key, sub_schema in schema.items():
        if key in _DIRECTIVES or not isinstance(sub_schema, dict):
            continue
        if isinstance(item.get(key), (dict, list)):
            item[key] = _serialize_items(item[key], sub_schema, ctx)

    return item


def serialize(
    schema: dict[str, Any] | Callable[[Any], dict[str, Any]],
) -> Callable[[Any], Any]:
    """
    Hook that projects the items of a context through a schema.

    Args:
        schema: Dict, or function(ctx) returning one, with directives:
            only     - field name(s) to keep (dot notation allowed);
                       "_include", "_elapsed" and the fields listed in an
                       item's "_include" are always kept
            exclude  - field name(s) to drop (dot notation allowed)
            computed - {name: function(item, ctx)} fields to add; their
                       names are listed under "_computed"
            any other key holds a nested schema for that field

    Example:
        schema = {
            "only": ["name", "email"],
            "computed": {"is_admin": lambda item, ctx: "admin" in item["roles"]},
            "posts": {"exclude": "draft"},
        }
        service_hooks = {"after": {"find": serialize(schema)}}
    """

    def serialize_hook(ctx: Any) -> Any:
        current = schema(ctx) if callable(schema) else schema
        items = get_items(ctx)
        if items is not None:
            replace_items(ctx, _serialize_items(items, current, ctx))
        return ctx

    return serialize_hook
