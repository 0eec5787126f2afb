"""Soft-delete lifecycle hook."""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from typing import Any

from hookz._adapter import settle
from hookz._errors import BadRequest, NotFound
from hookz._utils import check_context, get_by_dot, set_by_dot

logger = logging.getLogger(__name__)

DISABLE_SOFT_DELETE = "$disableSoftDelete"


def soft_delete(
    field: str = "deleted",
) -> Callable[[Any, Any], Coroutine[Any, Any, Any]]:
    """
    Mark items as deleted instead of removing them.

    Must be registered as a before hook for all methods. Reads are filtered
    to exclude deleted items, and remove() patches the item with
    {field: True} instead of deleting it. Set query["$disableSoftDelete"]
    to bypass the hook for one call.

    Args:
        field: Field holding the delete flag. Supports dot notation.

    Example:
        service_hooks = {"before": {"all": soft_delete()}}

    Raises:
        NotFound: get/update/patch/remove target a missing or deleted item
    """

    async def soft_delete_hook(ctx: Any, service: Any) -> Any:
        if service is None:
            raise BadRequest("soft_delete must run bound to a service.")
        check_context(ctx, "before", None, "soft_delete")
        if ctx.data is None:
            ctx.data = {}
        query = ctx.query

        if query.get(DISABLE_SOFT_DELETE):
            del query[DISABLE_SOFT_DELETE]
            return ctx

        async def throw_if_item_deleted(id: Any) -> None:
            try:
                item = await settle(
                    service.get(id, {"query": {DISABLE_SOFT_DELETE: True}})
                )
            except NotFound:
                raise
            except Exception as e:
                raise NotFound("Item not found.") from e
            if item is None:
                raise NotFound("Item not found.")
            if get_by_dot(item, field):
                logger.debug("Item %r is soft deleted", id)
                raise NotFound("Item has been soft deleted.")

        method = ctx.method
        if method == "find":
            query[field] = {"$ne": True}
        elif method == "get":
            await throw_if_item_deleted(ctx.id)
        elif method in ("update", "patch"):
            if ctx.id is not None:
                await throw_if_item_deleted(ctx.id)
            else:
                query[field] = {"$ne": True}
        elif method == "remove":
            if ctx.id is not None:
                await throw_if_item_deleted(ctx.id)
            set_by_dot(ctx.data, field, True)
            query[field] = {"$ne": True}
            query[DISABLE_SOFT_DELETE] = True
            logger.debug("Soft deleting %r via patch", ctx.id)
            ctx.result = await settle(service.patch(ctx.id, ctx.data, ctx.params))

        return ctx

    return soft_delete_hook
