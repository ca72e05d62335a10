"""
Settlement — payment intents and provider event reconciliation.

    from ordercore.settlement import SettlementEngine
"""

from ordercore.settlement._graph import (
    SettlementSpec,
    Outcome,
    OutcomeSettled,
    OutcomeRejected,
    SettlementOutcome,
    FinalResultNode,
)
from ordercore.settlement._engine import SettlementEngine

__all__ = (
    "SettlementEngine",
    "SettlementSpec",
    "Outcome",
    "OutcomeSettled",
    "OutcomeRejected",
    "SettlementOutcome",
    "FinalResultNode",
)
