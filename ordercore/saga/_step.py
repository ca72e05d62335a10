"""
Saga step creation.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from combinators import lift as L
from kungfu import LazyCoroResult

from ordercore._types import Compensator
from ordercore.saga._types import SagaStep


def step[T, E](
    action: LazyCoroResult[T, E],
    compensate: Compensator[T] | None = None,
    *,
    name: str = "step",
) -> SagaStep[T, E]:
    """
    Create a compensated saga step.

    Example:
        from ordercore import saga as S
        from combinators import lift as L

        intent = S.step(
            action=L.catching_async(
                lambda: gateway.create_intent(amount, "INR", meta, key),
                on_error=lambda e: Errors.provider(str(e), e),
            ),
            compensate=lambda handle: gateway.cancel_intent(handle.provider_ref),
            name="provider_intent",
        )

        flow = intent.then(lambda handle: S.step(persist(handle), name="persist"))
    """
    return SagaStep(action=action, compensate=compensate, name=name)


def from_async[T, E](
    action: Callable[[], Awaitable[T]],
    on_error: Callable[[Exception], E],
    compensate: Compensator[T] | None = None,
    *,
    name: str = "step",
) -> SagaStep[T, E]:
    """Step from a raising coroutine; exceptions become Error(on_error(exc))."""
    return SagaStep(
        action=L.catching_async(action, on_error=on_error),
        compensate=compensate,
        name=name,
    )


__all__ = ("step", "from_async")
