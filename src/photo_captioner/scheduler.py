"""Bounded-concurrency runner with a full completion barrier."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from loguru import logger

from photo_captioner.config import DEFAULT_CONCURRENCY
from photo_captioner.errors import ConfigError


T = TypeVar("T")


def check_concurrency_limit(concurrency_limit: int) -> None:
    """Raise ConfigError unless ``concurrency_limit`` is a positive integer."""
    if isinstance(concurrency_limit, bool) or not isinstance(concurrency_limit, int):
        msg = f"concurrency limit must be an integer, got {concurrency_limit!r}"
        raise ConfigError(msg)
    if concurrency_limit <= 0:
        msg = f"concurrency limit must be positive, got {concurrency_limit}"
        raise ConfigError(msg, hint="Pass --concurrency 1 or higher")


async def run_all(
    tasks: Sequence[Callable[[], Awaitable[T]]],
    concurrency_limit: int = DEFAULT_CONCURRENCY,
) -> list[T]:
    """
    Run every task factory with at most ``concurrency_limit`` in flight.

    Factories are admitted in sequence order as slots free up, each exactly once. The
    call returns only after all of them have settled, with results in completion order.
    A factory is expected to capture its own failures in its result; if one raises
    anyway, its siblings still run to completion and the exceptions are re-raised
    together as an ExceptionGroup after the barrier.

    Raises:
        ConfigError: ``concurrency_limit`` is not a positive integer. Nothing is started.

    """
    check_concurrency_limit(concurrency_limit)

    if not tasks:
        return []

    sem = asyncio.Semaphore(concurrency_limit)
    logger.debug("scheduling_tasks", count=len(tasks), concurrency=concurrency_limit)

    async def _admit(factory: Callable[[], Awaitable[T]]) -> T:
        async with sem:
            return await factory()

    # Tasks are created in input order, so they queue on the semaphore in that order.
    pending = [asyncio.ensure_future(_admit(factory)) for factory in tasks]

    results: list[T] = []
    errors: list[Exception] = []
    for settled in asyncio.as_completed(pending):
        try:
            results.append(await settled)
        except Exception as exc:  # noqa: BLE001
            logger.exception("scheduled_task_raised", error=str(exc))
            errors.append(exc)

    if errors:
        msg = f"{len(errors)} of {len(tasks)} scheduled task(s) raised"
        raise ExceptionGroup(msg, errors)
    return results
