"""
Example: Service hooks with Hookz

This example wires before/after hooks for an in-memory "users" service:
sequencing, provider-based branching, concurrent predicates, soft delete,
serialization, tracing and hook chains loaded from an expression.
"""

import asyncio
import logging
from datetime import datetime, timezone

from hookz import (
    HookContext,
    NotFound,
    PrintHook,
    Registry,
    combine,
    every,
    hook,
    iff,
    is_provider,
    predicate,
    serialize,
    soft_delete,
    traverse,
    unless,
    use_tracing,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

# =============================================================================
# Domain: an in-memory service
# =============================================================================


class UsersService:
    def __init__(self):
        self.items = {}
        self.next_id = 1

    async def find(self, params=None):
        query = (params or {}).get("query", {})
        skip_deleted = query.get("deleted") == {"$ne": True}
        return [
            dict(u) for u in self.items.values()
            if not (skip_deleted and u.get("deleted"))
        ]

    async def get(self, id, params=None):
        if id not in self.items:
            raise NotFound(f"No record found for id '{id}'")
        return dict(self.items[id])

    async def create(self, data, params=None):
        item = {"id": self.next_id, **data}
        self.items[self.next_id] = item
        self.next_id += 1
        return dict(item)

    async def update(self, id, data, params=None):
        self.items[id] = {"id": id, **data}
        return dict(self.items[id])

    async def patch(self, id, data, params=None):
        self.items[id].update(data)
        return dict(self.items[id])

    async def remove(self, id, params=None):
        return self.items.pop(id)


async def call(service, hooks, method, *, id=None, data=None, provider=None):
    """Minimal dispatcher: before hooks, the method, after hooks."""
    params = {"provider": provider} if provider else {}
    ctx = HookContext(method, "before", data=data, params=params, id=id)
    ctx = await hooks["before"].get(method, combine()).run(ctx, service)

    if ctx.result is None:
        fn = getattr(service, method)
        if method == "find":
            ctx.result = await fn(ctx.params)
        elif method in ("get", "remove"):
            ctx.result = await fn(ctx.id, ctx.params)
        elif method == "create":
            ctx.result = await fn(ctx.data, ctx.params)
        else:
            ctx.result = await fn(ctx.id, ctx.data, ctx.params)

    ctx.type = "after"
    ctx = await hooks["after"].get(method, combine()).run(ctx, service)
    return ctx.result


# =============================================================================
# 1. Sequencing - combine runs hooks in order
# =============================================================================


def trimmer(node, state):
    if isinstance(node, str):
        state.update(node.strip())


@hook
def set_created_at(ctx):
    ctx.data["created_at"] = datetime.now(timezone.utc).isoformat()


@hook
def lowercase_email(ctx):
    ctx.data["email"] = ctx.data["email"].lower()


before_create = combine(traverse(trimmer), lowercase_email, set_created_at)


# =============================================================================
# 2. Branching on the transport - iff / else_ / unless
# =============================================================================


def strip_password(ctx):
    items = ctx.result if isinstance(ctx.result, list) else [ctx.result]
    for item in items:
        item.pop("password", None)


# Server-side calls keep everything; external callers get a public view
after_read = iff(is_provider("server"), combine()).else_(
    strip_password,
    serialize({"exclude": ["created_at"]}),
)


# =============================================================================
# 3. Concurrent predicates - some / every
# =============================================================================


@predicate
async def email_is_unique(ctx, service):
    users = await service.find({"query": {"deleted": {"$ne": True}}})
    return all(u["email"] != ctx.data["email"] for u in users)


@predicate
def has_password(ctx):
    return bool(ctx.data.get("password"))


def reject(ctx):
    raise ValueError(f"Invalid user: {ctx.data['email']}")


validate_create = unless(every(email_is_unique, has_password), reject)


# =============================================================================
# 4. Expressions - hook chains from configuration
# =============================================================================

registry = Registry()
registry.hook(reject)


@registry.predicate
def is_admin_email(ctx):
    return ctx.data.get("email", "").endswith("@admin.example")


before_patch = registry.load(
    """
    # external callers may not promote themselves
    soft_delete() >> IF provider(external) & is_admin_email THEN reject
    """
)


# =============================================================================
# Run examples
# =============================================================================

hooks = {
    "before": {
        "create": combine(before_create, validate_create),
        "find": soft_delete(),
        "get": soft_delete(),
        "remove": soft_delete(),
        "patch": before_patch,
    },
    "after": {
        "find": after_read,
        "get": after_read,
        "create": after_read,
    },
}


async def main():
    users = UsersService()

    print("=== 1. Create with sequencing and validation ===\n")
    created = await call(
        users, hooks, "create",
        data={"email": "  Ada@Example.com ", "password": "secret"},
        provider="rest",
    )
    print(f"  created -> {created}")

    try:
        await call(users, hooks, "create", data={"email": "ada@example.com", "password": "x"})
    except ValueError as e:
        print(f"  duplicate -> {e}")

    print("\n=== 2. Provider branching ===\n")
    print(f"  server -> {await call(users, hooks, 'get', id=1)}")
    print(f"  rest   -> {await call(users, hooks, 'get', id=1, provider='rest')}")

    print("\n=== 3. Soft delete ===\n")
    await call(users, hooks, "remove", id=1)
    print(f"  stored -> {users.items[1]}")
    print(f"  find   -> {await call(users, hooks, 'find')}")
    try:
        await call(users, hooks, "get", id=1)
    except NotFound as e:
        print(f"  get    -> {e.code} {e}")

    print("\n=== 4. Expression-loaded hooks ===\n")
    await call(users, hooks, "create", data={"email": "bob@example.com", "password": "pw"})
    try:
        await call(
            users, hooks, "patch",
            id=2, data={"email": "bob@admin.example"}, provider="rest",
        )
    except ValueError as e:
        print(f"  rest patch   -> {e}")
    await call(users, hooks, "patch", id=2, data={"email": "bob@admin.example"})
    print(f"  server patch -> {users.items[2]['email']}")

    print("\n=== 5. Tracing ===\n")
    with use_tracing(PrintHook()):
        await call(users, hooks, "get", id=2, provider="socketio")


if __name__ == "__main__":
    asyncio.run(main())
