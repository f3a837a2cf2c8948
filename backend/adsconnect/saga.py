"""
Compensating actions for multi-step remote operations.

Push one compensation per remote object as soon as it exists; on failure,
unwind runs them newest-first. A failing compensation is logged and the
rest still run — cleanup never raises.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Compensation:
    label: str
    action: Callable[[], Awaitable[Any]]


class CompensationStack:
    def __init__(self):
        self._items: list[Compensation] = []

    def push(self, label: str, action: Callable[[], Awaitable[Any]]) -> None:
        self._items.append(Compensation(label, action))

    def __len__(self) -> int:
        return len(self._items)

    @property
    def labels(self) -> list[str]:
        return [c.label for c in self._items]

    def clear(self) -> None:
        self._items.clear()

    async def unwind(self) -> list[str]:
        """Run every pending compensation in reverse order. Returns labels whose cleanup failed."""
        failed = []
        while self._items:
            comp = self._items.pop()
            try:
                await comp.action()
                logger.info(f"Rolled back {comp.label}")
            except Exception as e:
                logger.error(f"Failed to roll back {comp.label}: {e}")
                failed.append(comp.label)
        return failed
