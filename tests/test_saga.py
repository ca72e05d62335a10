"""
Tests for compensated saga steps.
"""

import pytest

from kungfu import Ok, Error, LazyCoroResult

from ordercore import saga as S


def ok[T](value: T) -> LazyCoroResult[T, str]:
    async def run():
        return Ok(value)

    return LazyCoroResult(run)


def fail(error: str) -> LazyCoroResult[object, str]:
    async def run():
        return Error(error)

    return LazyCoroResult(run)


class TestRunChain:
    @pytest.mark.asyncio
    async def test_first_failure_never_builds_second(self):
        built: list[int] = []

        def second(v: int):
            built.append(v)
            return S.step(ok(v), name="second")

        result = await S.run_chain(S.step(fail("nope"), name="first").then(second))

        failure = result.unwrap_err()
        assert failure.error == "nope"
        assert failure.step_failed == 1
        assert failure.step_name == "first"
        assert failure.compensators_run == 0
        assert built == []

    @pytest.mark.asyncio
    async def test_both_steps_succeed(self):
        undone: list[int] = []

        async def undo(value: int) -> None:
            undone.append(value)

        chain = S.step(ok(2), undo, name="first").then(
            lambda v: S.step(ok(v * 10), undo, name="second")
        )
        result = await S.run_chain(chain)

        done = result.unwrap()
        assert done.value == 20
        assert done.steps_executed == 2
        assert done.compensators_recorded == 2
        assert undone == []

    @pytest.mark.asyncio
    async def test_second_failure_compensates_first(self):
        undone: list[int] = []

        async def undo(value: int) -> None:
            undone.append(value)

        chain = S.step(ok(7), undo, name="first").then(
            lambda v: S.step(fail("boom"), name="second")
        )
        result = await S.run_chain(chain)

        failure = result.unwrap_err()
        assert failure.step_failed == 2
        assert failure.step_name == "second"
        assert failure.compensators_run == 1
        assert failure.rollback_complete
        assert undone == [7]

    @pytest.mark.asyncio
    async def test_failing_compensator_is_counted(self):
        async def broken(value: int) -> None:
            raise RuntimeError("cannot undo")

        chain = S.step(ok(1), broken, name="first").then(
            lambda v: S.step(fail("boom"), name="second")
        )
        result = await S.run_chain(chain)

        failure = result.unwrap_err()
        assert failure.compensators_failed == 1
        assert not failure.rollback_complete

    @pytest.mark.asyncio
    async def test_compensators_run_newest_first(self):
        order: list[str] = []

        async def undo(value: str) -> None:
            order.append(value)

        recorded = [("a", "a", undo), ("b", "b", undo), ("c", "c", undo)]
        ran, failed = await S.run_compensators(recorded)

        assert (ran, failed) == (3, 0)
        assert order == ["c", "b", "a"]


class TestFromAsync:
    @pytest.mark.asyncio
    async def test_exception_becomes_error(self):
        async def explode() -> int:
            raise ConnectionError("down")

        chain = S.from_async(explode, on_error=lambda exc: f"wrapped: {exc}", name="remote").then(
            lambda v: S.step(ok(v), name="next")
        )
        result = await S.run_chain(chain)

        failure = result.unwrap_err()
        assert failure.error == "wrapped: down"
        assert failure.step_name == "remote"

    @pytest.mark.asyncio
    async def test_value_passes_through(self):
        async def fetch() -> int:
            return 5

        result = await S.run_chain(S.from_async(fetch, on_error=str).then(lambda v: S.step(ok(v + 1))))

        assert result.unwrap().value == 6

    @pytest.mark.asyncio
    async def test_compensator_sees_produced_value(self):
        undone: list[str] = []

        async def reserve() -> str:
            return "hold-1"

        async def release(ref: str) -> None:
            undone.append(ref)

        chain = S.from_async(reserve, on_error=str, compensate=release).then(
            lambda ref: S.step(fail("write failed"), name="persist")
        )
        await S.run_chain(chain)

        assert undone == ["hold-1"]
