"""Correlated request/acknowledge channel for human confirmations.

A producer that needs a decision calls ``acknowledge``; the request goes out over
the bound transport and the caller suspends until one of three things happens:

- a response with the same correlation id is dispatched back,
- the wall-clock timeout expires (ConfirmationTimeoutError),
- the caller's cancel event fires (ConfirmationAbortedError).

Every outstanding request is one entry in a correlation map
(``correlation_id -> Future``). The entry is removed on all three outcomes, so
timed-out requests never accumulate. Responses that arrive after the entry is
gone, or a second response for the same request, are dropped.
"""

import asyncio
import functools
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

from mediaplan.errors import ConfirmationAbortedError, ConfirmationTimeoutError
from mediaplan.models.confirmation import ConfirmationRequest, ConfirmationResponse
from mediaplan.utils.config import DEFAULT_TIMEOUT_MS

logger = logging.getLogger(__name__)

Reply = Callable[[Any], bool]
"""Delivers a consumer payload for one request; returns False if it was dropped."""


class ConfirmationTransport(ABC):
    """Carries confirmation requests to a consumer.

    ``send`` must not wait for the answer. The consumer's answer is handed
    back later through *reply*, from the event loop thread.
    """

    @abstractmethod
    def send(
        self, request: ConfirmationRequest, reply: Reply
    ) -> Optional[Awaitable[None]]:
        """Deliver *request*; may be a coroutine function."""
        raise NotImplementedError

    def withdraw(self, request: ConfirmationRequest) -> None:
        """Called when *request* timed out or was aborted without an answer."""


class ConfirmationChannel:
    """Multiplexes outstanding confirmation requests over one transport."""

    def __init__(
        self,
        transport: Optional[ConfirmationTransport] = None,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        """Create a channel, optionally bound to *transport*."""
        self._transport = transport
        self.default_timeout_ms = default_timeout_ms
        self._pending: Dict[str, "asyncio.Future[Any]"] = {}

    def bind(self, transport: ConfirmationTransport) -> None:
        """Route future requests through *transport*."""
        self._transport = transport

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for an answer."""
        return len(self._pending)

    def is_pending(self, correlation_id: str) -> bool:
        """Whether *correlation_id* is still waiting for an answer."""
        return correlation_id in self._pending

    async def acknowledge(
        self,
        request: ConfirmationRequest,
        timeout_ms: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ConfirmationResponse:
        """Send *request* and wait for its correlated response.

        Args:
            request: The question to ask.
            timeout_ms: Wall-clock wait limit; defaults to ``default_timeout_ms``.
            cancel_event: Setting this event aborts the wait.

        Returns:
            ConfirmationResponse: The consumer's decision.

        Raises:
            ConfirmationTimeoutError: If no response arrived in time.
            ConfirmationAbortedError: If *cancel_event* fired first, or the
                channel was closed while waiting.
            RuntimeError: If no transport is bound.
            ValueError: If the correlation id is already waiting.
        """
        if self._transport is None:
            raise RuntimeError("No confirmation transport bound to channel")
        if timeout_ms is None:
            timeout_ms = self.default_timeout_ms
        if cancel_event is not None and cancel_event.is_set():
            raise ConfirmationAbortedError(request.event)

        correlation_id = request.correlation_id
        if correlation_id in self._pending:
            raise ValueError(f"Correlation id {correlation_id} is already pending")

        transport = self._transport
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(timeout_ms, 0) / 1000
        future: "asyncio.Future[Any]" = loop.create_future()
        self._pending[correlation_id] = future
        cancel_waiter: Optional["asyncio.Task[Any]"] = None
        answered = False
        try:
            sent = transport.send(
                request, functools.partial(self.dispatch, correlation_id)
            )
            if inspect.isawaitable(sent):
                await sent
            waiters = {future}
            if cancel_event is not None:
                cancel_waiter = asyncio.ensure_future(cancel_event.wait())
                waiters.add(cancel_waiter)
            await asyncio.wait(
                waiters,
                timeout=max(deadline - loop.time(), 0),
                return_when=asyncio.FIRST_COMPLETED,
            )
            # A response that made it in wins over a simultaneous cancellation.
            if future.done() and not future.cancelled():
                answered = True
                return ConfirmationResponse.from_payload(future.result())
            if future.cancelled() or (cancel_event is not None and cancel_event.is_set()):
                raise ConfirmationAbortedError(request.event)
            logger.info(
                "Confirmation %s (%s) timed out after %dms",
                request.event,
                correlation_id,
                timeout_ms,
            )
            raise ConfirmationTimeoutError(request.event, timeout_ms)
        finally:
            self._pending.pop(correlation_id, None)
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            if not future.done():
                future.cancel()
            if not answered:
                transport.withdraw(request)

    def dispatch(self, correlation_id: str, payload: Any) -> bool:
        """Resolve the request waiting on *correlation_id* with *payload*.

        Returns:
            bool: True if a waiter received the payload, False if it was dropped
            (unknown id, already answered, timed out or cancelled).
        """
        future = self._pending.get(correlation_id)
        if future is None or future.done():
            logger.debug("Dropping response for unknown request %s", correlation_id)
            return False
        future.set_result(payload)
        return True

    def close(self) -> None:
        """Abort every outstanding request."""
        for future in list(self._pending.values()):
            if not future.done():
                future.cancel()
