"""Cooperative cancellation for generation runs.

A token is created per generation and handed to the backend, which checks it
at every fragment boundary.
"""

import asyncio

from .errors import OperationCancelledError

__all__ = ["CancellationToken", "raise_if_cancelled"]


class CancellationToken:
    """Lightweight wrapper around :class:`asyncio.Event` for cancellations."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        """Return ``True`` when cancellation has been requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation."""
        self._event.set()

    async def wait(self) -> None:
        """Wait until cancellation is requested."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`OperationCancelledError` if cancellation occurred."""
        if self._event.is_set():
            raise OperationCancelledError()


def raise_if_cancelled(token: CancellationToken | None) -> None:
    """Convenience helper raising when *token* has been signalled."""
    if token is not None:
        token.raise_if_cancelled()
