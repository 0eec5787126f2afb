"""Error classes raised by hooks and combinators."""

from __future__ import annotations

from typing import Any


class HookzError(Exception):
    """
    Base class for errors raised by hookz.

    Mirrors the HTTP-style errors a service layer reports to its callers,
    so a dispatcher can translate them into responses directly.

    Attributes:
        code: HTTP status code for the error
        class_name: Machine-readable error name
        data: Optional extra payload
    """

    code = 500
    class_name = "general-error"

    def __init__(self, message: str = "", data: Any = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "className": self.class_name,
            "data": self.data,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class BadRequest(HookzError):
    """The context handed to a hook is malformed."""

    code = 400
    class_name = "bad-request"


class NotFound(HookzError):
    """The item an operation targets does not exist (or was soft deleted)."""

    code = 404
    class_name = "not-found"


class MethodNotAllowed(HookzError):
    """A hook or combinator was used incorrectly."""

    code = 405
    class_name = "method-not-allowed"
