"""
Graph runner — thin layer over nodnod.

Nodes declare their inputs through __compose__ signatures; the agent
discovers the rest from the target node. Values are injected by type.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, cast

from nodnod import EventLoopAgent, Node, Scope, Value

type Injection = tuple[type[Any], Any]


# ═══════════════════════════════════════════════════════════════════════════════
# Scope
# ═══════════════════════════════════════════════════════════════════════════════


class _TypedScope:
    """Type-keyed access to a nodnod.Scope."""

    __slots__ = ("_scope",)

    def __init__(self, detail: str) -> None:
        self._scope = Scope(detail=detail)

    @property
    def inner(self) -> Scope:
        return self._scope

    def inject[T](self, typ: type[T], value: T) -> None:
        self._scope.push(Value(typ, value))

    def get[T](self, typ: type[T]) -> T:
        result = self._scope.get(typ)
        if result is None:
            raise KeyError(f"{typ.__name__} not found in scope")
        return cast(T, result.value)

    async def __aenter__(self) -> _TypedScope:
        await self._scope.__aenter__()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self._scope.__aexit__(*args)


async def _execute[T](
    target: type[T],
    agent: EventLoopAgent,
    injections: tuple[Injection, ...],
) -> T:
    async with _TypedScope(detail=target.__name__) as scope:
        for typ, value in injections:
            scope.inject(typ, value)

        run_method = cast(
            Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
            getattr(agent, "run"),
        )
        await run_method(scope.inner, {})

        return scope.get(target)


# ═══════════════════════════════════════════════════════════════════════════════
# Run / Compiled
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Run[T]:
    """Pending execution of a compiled graph; await it to get the target node."""

    _target: type[T]
    _agent: EventLoopAgent
    _injections: tuple[Injection, ...]

    def inject(self, value: object) -> Run[T]:
        """Inject a value under its runtime type."""
        return Run(
            _target=self._target,
            _agent=self._agent,
            _injections=(*self._injections, (type(value), value)),
        )

    def __await__(self) -> Any:
        return _execute(self._target, self._agent, self._injections).__await__()


@dataclass(frozen=True, slots=True)
class Compiled[T]:
    """
    Pre-built agent for a target node.

        settle = graph(FinalResultNode)     # at startup
        node = await settle.run().inject(spec)
    """

    _target: type[T]
    _agent: EventLoopAgent

    def run(self) -> Run[T]:
        return Run(_target=self._target, _agent=self._agent, _injections=())


def graph[T](target: type[T]) -> Compiled[T]:
    nodes: set[type[Node[Any, Any]]] = {cast(type[Node[Any, Any]], target)}
    return Compiled(_target=target, _agent=EventLoopAgent.build(nodes))


__all__ = ("Run", "Compiled", "graph")
