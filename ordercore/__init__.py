"""
ordercore — order lifecycle and payment settlement.

    from ordercore import saga as S        # Compensated steps
    from ordercore import graph as G       # Computation graphs
    from ordercore import store as St      # Transactions and persistence
    from ordercore.orders import OrderService
    from ordercore.settlement import SettlementEngine
"""

from ordercore import saga
from ordercore import graph
from ordercore import store
from ordercore._types import Lazy, Compensator
from ordercore.errors import CoreError, ErrorKind, Errors
from ordercore.config import Settings, configure_logging

__version__ = "0.1.0"

__all__ = (
    "saga",
    "graph",
    "store",
    "Lazy",
    "Compensator",
    "CoreError",
    "ErrorKind",
    "Errors",
    "Settings",
    "configure_logging",
)
