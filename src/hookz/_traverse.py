"""Deep in-place traversal of context items."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from hookz._utils import get_items


class TraverseState:
    """
    Position of the node handed to a traverse converter.

    Attributes:
        node: Current value
        key: Key or index in the parent (None at the root)
        path: Keys from the root to this node
        parent: Containing dict or list (None at the root)
        circular: True if node is a container already on the current path
    """

    __slots__ = ("node", "key", "path", "parent", "circular", "removed")

    def __init__(self, node: Any, key: Any, path: list[Any], parent: Any, circular: bool):
        self.node = node
        self.key = key
        self.path = path
        self.parent = parent
        self.circular = circular
        self.removed = False

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def is_leaf(self) -> bool:
        return not isinstance(self.node, (dict, list)) or not self.node

    def update(self, value: Any) -> None:
        """Replace this node in its parent. Children of the new value are visited."""
        self.node = value
        if self.parent is not None:
            self.parent[self.key] = value

    def remove(self) -> None:
        """Remove this node from its parent."""
        if self.parent is not None:
            del self.parent[self.key]
            self.removed = True


def _walk(
    node: Any,
    converter: Callable[[Any, TraverseState], Any],
    key: Any,
    path: list[Any],
    parent: Any,
    ancestors: list[int],
) -> TraverseState:
    circular = isinstance(node, (dict, list)) and id(node) in ancestors
    state = TraverseState(node, key, path, parent, circular)
    converter(node, state)
    if state.removed or state.circular:
        return state

    current = state.node
    if isinstance(current, dict):
        ancestors.append(id(current))
        for child_key in list(current):
            if child_key in current:
                _walk(
                    current[child_key], converter, child_key,
                    path + [child_key], current, ancestors,
                )
        ancestors.pop()
    elif isinstance(current, list):
        ancestors.append(id(current))
        index = 0
        while index < len(current):
            child = _walk(
                current[index], converter, index, path + [index], current, ancestors
            )
            if not child.removed:
                index += 1
        ancestors.pop()
    return state


def traverse(
    converter: Callable[[Any, TraverseState], Any],
    get_obj: Any = None,
) -> Callable[[Any], Any]:
    """
    Hook that walks objects depth-first and modifies them in place.

    Args:
        converter: Called as converter(node, state) for every node, root
            included. Use state.update(value) to replace the node and
            state.remove() to drop it. Replacing the root has no effect.
        get_obj: Object to walk, or a function(ctx) returning it.
            Default is the context items (see get_items()).

    Example - trim strings
        def trimmer(node, state):
            if isinstance(node, str):
                state.update(node.strip())

        service_hooks = {"before": {"create": traverse(trimmer)}}

    Example - a REST query uses the string "null"; replace it with None
        def nuller(node, state):
            if node == "null":
                state.update(None)

        service_hooks = {"before": {"find": traverse(nuller, lambda ctx: ctx.query)}}
    """

    def traverse_hook(ctx: Any) -> Any:
        if callable(get_obj):
            items = get_obj(ctx)
        else:
            items = get_obj if get_obj is not None else get_items(ctx)

        for item in items if isinstance(items, list) else [items]:
            _walk(item, converter, None, [], None, [])
        return ctx

    return traverse_hook
