"""
Graph — declarative node graphs.

    from ordercore import graph as G

    @G.node
    class LoadPayment:
        @classmethod
        async def __compose__(cls, spec: SettlementSpec) -> "LoadPayment":
            return cls(await spec.tx.find_payment_by_provider_ref(...))

    settle = G.graph(FinalResultNode)
    node = await settle.run().inject(spec)
"""

from nodnod import scalar_node as node

from ordercore.graph._run import Run, Compiled, graph

__all__ = ("node", "Run", "Compiled", "graph")
