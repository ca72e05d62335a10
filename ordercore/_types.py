"""
Core types for ordercore.

Aliases shared across modules.
"""

from __future__ import annotations

from collections.abc import Callable, Awaitable

from kungfu import LazyCoroResult

from ordercore.errors import CoreError

type Lazy[T] = LazyCoroResult[T, CoreError]
"""Lazy async computation failing with CoreError."""

type Compensator[T] = Callable[[T], Awaitable[None]]
"""Undo action receiving the value produced by the step it compensates."""

__all__ = ("Lazy", "Compensator")
