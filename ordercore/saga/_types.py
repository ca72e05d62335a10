"""
Saga types — a step is an action plus the action that undoes it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from kungfu import LazyCoroResult

from ordercore._types import Compensator


# ═══════════════════════════════════════════════════════════════════════════════
# SagaStep
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaStep[T, E]:
    """
    When action succeeds its compensator is recorded.
    If a later step fails, recorded compensators run newest first.
    """

    action: LazyCoroResult[T, E]
    compensate: Compensator[T] | None
    name: str = "step"

    def then[U, E2](
        self,
        f: Callable[[T], SagaStep[U, E2]],
    ) -> Then[T, U, E, E2]:
        """Chain another step that depends on this one's value."""
        return Then(self, f)


@dataclass(frozen=True, slots=True)
class Then[T, U, E, E2]:
    """Sequential composition (monadic bind)."""

    inner: SagaStep[T, E]
    f: Callable[[T], SagaStep[U, E2]]


# ═══════════════════════════════════════════════════════════════════════════════
# Result Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaResult[T]:
    value: T
    steps_executed: int
    compensators_recorded: int


@dataclass(frozen=True, slots=True)
class SagaError[E]:
    """Failure of one step plus how the rollback went."""

    error: E
    step_failed: int
    step_name: str
    compensators_run: int
    compensators_failed: int

    @property
    def rollback_complete(self) -> bool:
        return self.compensators_failed == 0


__all__ = (
    "SagaStep",
    "Then",
    "SagaResult",
    "SagaError",
)
