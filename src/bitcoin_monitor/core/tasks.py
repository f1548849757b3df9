"""
Settled parallel task group.

Runs awaitables concurrently and hands back one outcome per task, in input
order, after every task has finished. Callers decide per component whether an
error is fatal or absorbed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Settled(Generic[T]):
    """Outcome of one task: a value or the exception it raised."""
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


async def settle_all(*aws: Awaitable[Any]) -> list[Settled[Any]]:
    """Await every task; never short-circuit on the first failure."""
    outcomes = await asyncio.gather(*aws, return_exceptions=True)
    settled: list[Settled[Any]] = []
    for outcome in outcomes:
        if isinstance(outcome, Exception):
            settled.append(Settled(error=outcome))
        elif isinstance(outcome, BaseException):
            # CancelledError, KeyboardInterrupt: not ours to absorb
            raise outcome
        else:
            settled.append(Settled(value=outcome))
    return settled


def raise_first_error(outcomes: list[Settled[Any]]) -> None:
    """Re-raise the first captured error, if any."""
    for outcome in outcomes:
        if outcome.error is not None:
            raise outcome.error
