"""Shared type variables and constants."""

from __future__ import annotations

from typing import TypeVar

T = TypeVar("T")

METHODS: tuple[str, ...] = ("find", "get", "create", "update", "patch", "remove")
HOOK_TYPES: tuple[str, ...] = ("before", "after")
