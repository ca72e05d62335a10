"""
Saga — multi-step operations with compensation.

    from ordercore import saga as S

    saga = S.step(action, compensate).then(lambda v: S.step(action2, compensate2))
    result = await S.run_chain(saga)
"""

from ordercore.saga._types import SagaStep, SagaResult, SagaError, Then
from ordercore.saga._step import step, from_async
from ordercore.saga._run import run_chain, run_step, run_compensators

__all__ = (
    "SagaStep",
    "SagaResult",
    "SagaError",
    "Then",
    "step",
    "from_async",
    "run_chain",
    "run_step",
    "run_compensators",
)
