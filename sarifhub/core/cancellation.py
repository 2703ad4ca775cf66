"""Cooperative cancellation for long-running hub operations."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .exceptions import OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """A one-shot cancellation signal shared between a caller and an operation.

    Usage:
        token = CancellationToken()
        task = asyncio.create_task(client.fetch_project_info(options=HubRequestOptions(cancellation=token)))
        token.cancel()
    """

    def __init__(self, message: str = "Operation was cancelled.") -> None:
        self.message = message
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Calling it more than once has no effect."""
        if self._event.is_set():
            return
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancellation_requested(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        if self._event.is_set():
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister

    async def wait(self) -> None:
        await self._event.wait()

    def create_cancellation_error(self) -> OperationCancelledError:
        return OperationCancelledError(self.message)

    def raise_if_cancellation_requested(self) -> None:
        if self._event.is_set():
            raise self.create_cancellation_error()


async def run_cancellable(
    awaitable: Awaitable[T],
    cancellation: CancellationToken | None,
    discard: Callable[[T], Awaitable[None]] | None = None,
) -> T:
    """Await `awaitable`, aborting it if `cancellation` fires first.

    The aborted operation is cancelled (which closes any socket it owns)
    and `OperationCancelledError` is raised in its place. If the operation
    completed in the same instant, its result is passed to `discard`.
    """
    if cancellation is None:
        return await awaitable

    if cancellation.is_cancellation_requested:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise cancellation.create_cancellation_error()
    operation = asyncio.ensure_future(awaitable)
    cancelled = asyncio.ensure_future(cancellation.wait())
    try:
        done, _ = await asyncio.wait(
            {operation, cancelled}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        operation.cancel()
        cancelled.cancel()
        raise

    if operation in done:
        cancelled.cancel()
        return operation.result()

    operation.cancel()
    try:
        result = await operation
    except asyncio.CancelledError:
        pass
    except Exception as e:
        # The abort itself can surface as a reset; the cancellation wins.
        logger.debug(f"Cancelled operation ended with: {e!r}")
    else:
        if discard is not None:
            await discard(result)
    raise cancellation.create_cancellation_error()
