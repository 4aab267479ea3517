"""Tests for the bounded-concurrency scheduler."""

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from photo_captioner.errors import ConfigError
from photo_captioner.scheduler import run_all


class _Probe:
    """Counts how many probe tasks run at once."""

    def __init__(self) -> None:
        self.in_flight = 0
        self.peak = 0
        self.started: list[int] = []

    def task(self, idx: int, delay: float = 0.01) -> Callable[[], Awaitable[int]]:
        async def _run() -> int:
            self.started.append(idx)
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
            await asyncio.sleep(delay)
            self.in_flight -= 1
            return idx

        return _run


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [1, 5, 50])
async def test_run_all_returns_one_result_per_task(limit: int) -> None:
    """Every task settles exactly once whatever the limit (1, N or more than N)."""
    probe = _Probe()
    tasks = [probe.task(i) for i in range(5)]

    results = await run_all(tasks, limit)

    assert sorted(results) == list(range(5))
    assert sorted(probe.started) == list(range(5))


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [1, 3, 7])
async def test_run_all_never_exceeds_limit(limit: int) -> None:
    """The instrumented in-flight counter never goes past the configured limit."""
    probe = _Probe()

    await run_all([probe.task(i) for i in range(20)], limit)

    assert probe.peak == limit


@pytest.mark.asyncio
async def test_run_all_admits_in_input_order() -> None:
    """With a single slot, tasks start strictly in the order they were given."""
    probe = _Probe()

    await run_all([probe.task(i, delay=0) for i in range(10)], 1)

    assert probe.started == list(range(10))


@pytest.mark.asyncio
async def test_run_all_reports_in_completion_order() -> None:
    """Results are collected as tasks finish, not in input order."""
    probe = _Probe()
    tasks = [probe.task(0, delay=0.05), probe.task(1, delay=0.0)]

    results = await run_all(tasks, 2)

    assert results == [1, 0]


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, -1])
async def test_run_all_rejects_non_positive_limit(limit: int) -> None:
    """A non-positive limit fails before any task is started."""
    probe = _Probe()

    with pytest.raises(ConfigError):
        await run_all([probe.task(0)], limit)

    assert probe.started == []


@pytest.mark.asyncio
async def test_run_all_rejects_non_integer_limit() -> None:
    """Booleans and floats are not accepted as limits."""
    with pytest.raises(ConfigError):
        await run_all([], True)  # noqa: FBT003
    with pytest.raises(ConfigError):
        await run_all([], 2.0)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_run_all_empty_sequence() -> None:
    """No tasks means an empty result, not an error."""
    assert await run_all([], 3) == []


@pytest.mark.asyncio
async def test_run_all_raising_task_does_not_cancel_siblings() -> None:
    """A task that raises is reported after the barrier; siblings still finish."""
    probe = _Probe()

    async def _boom() -> int:
        msg = "defect"
        raise RuntimeError(msg)

    tasks = [probe.task(0, delay=0.02), _boom, probe.task(2, delay=0.02)]

    with pytest.raises(ExceptionGroup) as excinfo:
        await run_all(tasks, 3)

    assert sorted(probe.started) == [0, 2]
    assert probe.in_flight == 0
    assert len(excinfo.value.exceptions) == 1
    assert isinstance(excinfo.value.exceptions[0], RuntimeError)
