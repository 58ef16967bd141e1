"""Confirmation transports.

- AutoResponder: answers every request immediately (``--yes`` and automation).
- ConsoleConfirmationTransport: asks on the terminal with rich.
- RecordingTransport: keeps requests for a caller (or test) to answer later.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from rich.console import Console
from rich.prompt import Confirm

from mediaplan.channel.confirmation import ConfirmationTransport, Reply
from mediaplan.models.confirmation import ConfirmationRequest

logger = logging.getLogger(__name__)


class AutoResponder(ConfirmationTransport):
    """Answers every request with a fixed decision."""

    def __init__(self, confirmed: bool = True, delay_s: float = 0.0) -> None:
        """Answer *confirmed*, optionally after *delay_s* seconds."""
        self.confirmed = confirmed
        self.delay_s = delay_s

    def send(self, request: ConfirmationRequest, reply: Reply) -> None:
        payload = {"confirmed": self.confirmed}
        if self.delay_s > 0:
            asyncio.get_running_loop().call_later(self.delay_s, reply, payload)
        else:
            reply(payload)


class RecordingTransport(ConfirmationTransport):
    """Stores requests until ``respond`` is called for them."""

    def __init__(self) -> None:
        self.sent: List[Tuple[ConfirmationRequest, Reply]] = []

    @property
    def requests(self) -> List[ConfirmationRequest]:
        """Every request sent so far, oldest first."""
        return [request for request, _ in self.sent]

    def send(self, request: ConfirmationRequest, reply: Reply) -> None:
        self.sent.append((request, reply))

    def respond(self, payload: Any, correlation_id: Optional[str] = None) -> bool:
        """Answer a request (the latest one by default).

        Returns:
            bool: Whether the channel accepted the answer.
        """
        for request, reply in reversed(self.sent):
            if correlation_id is None or request.correlation_id == correlation_id:
                return reply(payload)
        raise KeyError(correlation_id)


def _default_render(console: Console, request: ConfirmationRequest) -> None:
    files = request.data.get("files", [])
    console.print(f"[bold]{request.event}[/bold]: {len(files)} file(s)")


class ConsoleConfirmationTransport(ConfirmationTransport):
    """Asks the user on the terminal.

    The prompt blocks on stdin, so it runs in a daemon thread: other
    confirmations keep going, and an unanswered prompt never holds up
    interpreter exit. When a request times out or is aborted the prompt is
    withdrawn with a notice on the console; anything typed afterwards is
    ignored.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        render: Optional[Callable[[Console, ConfirmationRequest], None]] = None,
    ) -> None:
        """Prompt on *console*, describing requests with *render*."""
        self.console = console or Console()
        self.render = render or _default_render
        self._tasks: Dict[str, "asyncio.Task[None]"] = {}

    def send(self, request: ConfirmationRequest, reply: Reply) -> None:
        correlation_id = request.correlation_id
        task = asyncio.get_running_loop().create_task(self._ask(request, reply))
        self._tasks[correlation_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(correlation_id, None))

    def withdraw(self, request: ConfirmationRequest) -> None:
        task = self._tasks.pop(request.correlation_id, None)
        if task is None or task.done():
            return
        task.cancel()
        self.console.print(
            f"\n[yellow]No answer in time; {request.event} was withdrawn.[/yellow]"
        )

    async def _ask(self, request: ConfirmationRequest, reply: Reply) -> None:
        self.render(self.console, request)
        loop = asyncio.get_running_loop()
        answer: "asyncio.Future[bool]" = loop.create_future()

        def prompt() -> None:
            try:
                confirmed = Confirm.ask(
                    "Apply these changes?", console=self.console, default=False
                )
            except EOFError as e:
                _deliver(loop, answer, error=e)
            else:
                _deliver(loop, answer, result=confirmed)

        threading.Thread(
            target=prompt, name=f"confirm-{request.correlation_id}", daemon=True
        ).start()
        try:
            confirmed = await answer
        except EOFError:
            logger.warning("No input available to answer %s", request.correlation_id)
            return
        if not reply({"confirmed": confirmed}):
            logger.info("Answer for %s arrived too late", request.correlation_id)


def _deliver(
    loop: asyncio.AbstractEventLoop,
    answer: "asyncio.Future[bool]",
    result: bool = False,
    error: Optional[BaseException] = None,
) -> None:
    """Hand a prompt result from the prompt thread to the event loop."""

    def settle() -> None:
        if answer.done():
            return
        if error is not None:
            answer.set_exception(error)
        else:
            answer.set_result(result)

    try:
        loop.call_soon_threadsafe(settle)
    except RuntimeError:
        logger.debug("Event loop closed before the prompt was answered")
