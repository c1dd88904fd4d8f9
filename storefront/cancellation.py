"""Cancellation token tied to a widget instance's lifetime."""
from __future__ import annotations

import inspect
from typing import Awaitable, TypeVar

from .errors import OperationCancelled

T = TypeVar("T")


class CancellationToken:
    """Set once on unmount; every pending await is checked against it."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled("widget was unmounted")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` and discard its result if cancelled meanwhile."""

        if self._cancelled and inspect.iscoroutine(awaitable):
            awaitable.close()
        self.raise_if_cancelled()
        try:
            result = await awaitable
        except Exception:
            self.raise_if_cancelled()
            raise
        self.raise_if_cancelled()
        return result


__all__ = ["CancellationToken"]
