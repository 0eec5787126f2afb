"""Hook context and the service boundary."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from hookz._errors import BadRequest
from hookz._types import HOOK_TYPES, METHODS


@dataclass
class HookContext:
    """
    Mutable context shared by every hook of one service call.

    Created once per call by the dispatcher and threaded by reference
    through the whole hook chain; hooks mutate it in place.

    Attributes:
        method: Operation kind (find, get, create, update, patch, remove)
        type: "before" or "after" the operation runs
        data: Input payload of create/update/patch
        result: Operation result (set by the dispatcher or a before hook)
        params: Call metadata; "query" holds filters, "provider" the transport
        id: Primary key for single-item operations
    """

    method: str
    type: str = "before"
    data: Any = None
    result: Any = None
    params: dict[str, Any] = field(default_factory=dict)
    id: Any = None

    def __post_init__(self) -> None:
        if self.method not in METHODS:
            raise BadRequest(
                f"Unknown method {self.method!r}. Expected one of: {', '.join(METHODS)}"
            )
        if self.type not in HOOK_TYPES:
            raise BadRequest(f"Hook type must be 'before' or 'after', got {self.type!r}")

    @property
    def query(self) -> dict[str, Any]:
        """Query parameters, created on first access."""
        query = self.params.get("query")
        if query is None:
            query = self.params["query"] = {}
        return query

    @query.setter
    def query(self, value: dict[str, Any]) -> None:
        self.params["query"] = value

    @property
    def provider(self) -> str | None:
        """Transport the call came in through, or None for server-side calls."""
        return self.params.get("provider")


@runtime_checkable
class Service(Protocol):
    """
    The service a hook chain is registered on.

    Methods may return values directly or awaitables.
    """

    def find(self, params: dict[str, Any] | None = None) -> Any: ...

    def get(self, id: Any, params: dict[str, Any] | None = None) -> Any: ...

    def create(self, data: Any, params: dict[str, Any] | None = None) -> Any: ...

    def update(
        self, id: Any, data: Any, params: dict[str, Any] | None = None
    ) -> Any: ...

    def patch(self, id: Any, data: Any, params: dict[str, Any] | None = None) -> Any: ...

    def remove(self, id: Any, params: dict[str, Any] | None = None) -> Any: ...
