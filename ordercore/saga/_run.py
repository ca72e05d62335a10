"""
Saga execution with automatic rollback.
"""

from __future__ import annotations

import logging
from typing import Any

from kungfu import Result, Ok, Error

from ordercore._types import Compensator
from ordercore.saga._types import SagaStep, SagaResult, SagaError, Then

logger = logging.getLogger(__name__)

type Recorded = tuple[str, Any, Compensator[Any]]


# ═══════════════════════════════════════════════════════════════════════════════
# Building blocks
# ═══════════════════════════════════════════════════════════════════════════════


async def run_step[T, E](
    step: SagaStep[T, E],
    recorded: list[Recorded],
) -> Result[T, E]:
    """Execute one step, recording its compensator on success."""
    result = await step.action
    match result:
        case Ok(value):
            if step.compensate is not None:
                recorded.append((step.name, value, step.compensate))
            return Ok(value)
        case Error(e):
            logger.info("Saga step %r failed: %s", step.name, e)
            return Error(e)


async def run_compensators(recorded: list[Recorded]) -> tuple[int, int]:
    """
    Run compensators newest first. Returns (run, failed).

    A failing compensator is logged and does not stop the others.
    """
    comp_run = 0
    comp_failed = 0

    for name, value, comp in reversed(recorded):
        try:
            await comp(value)
            comp_run += 1
        except Exception:
            comp_failed += 1
            logger.exception("Compensation for saga step %r failed", name)

    return comp_run, comp_failed


def _failure[E](error: E, index: int, name: str, run: int, failed: int) -> SagaError[E]:
    return SagaError(
        error=error,
        step_failed=index,
        step_name=name,
        compensators_run=run,
        compensators_failed=failed,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# run_chain()
# ═══════════════════════════════════════════════════════════════════════════════


async def run_chain[T, U, E, E2](
    chain: Then[T, U, E, E2],
) -> Result[SagaResult[U], SagaError[E | E2]]:
    """
    Execute inner step, then the step f builds from its value.

    If the second step fails, the first step's compensator runs.

    Example:
        match await S.run_chain(intent.then(persist)):
            case Ok(r):
                r.value
            case Error(e):
                e.error, e.step_name, e.rollback_complete
    """
    recorded: list[Recorded] = []

    match await run_step(chain.inner, recorded):
        case Error(e):
            comp_run, comp_failed = await run_compensators(recorded)
            return Error(_failure(e, 1, chain.inner.name, comp_run, comp_failed))
        case Ok(value):
            next_step = chain.f(value)

    match await run_step(next_step, recorded):
        case Ok(final_value):
            return Ok(
                SagaResult(
                    final_value,
                    steps_executed=2,
                    compensators_recorded=len(recorded),
                )
            )
        case Error(e2):
            comp_run, comp_failed = await run_compensators(recorded)
            return Error(_failure(e2, 2, next_step.name, comp_run, comp_failed))


__all__ = ("run_chain", "run_step", "run_compensators")
