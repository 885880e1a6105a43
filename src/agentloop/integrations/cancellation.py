"""Asyncio-based cancellation.

One token is threaded through a whole agent run tree. The loop and the
spawn coordinator check it before starting new work. Tool calls already in
flight are allowed to finish.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable
from dataclasses import dataclass, field

from agentloop.errors import CancellationError

logger = logging.getLogger(__name__)


@dataclass
class CancellationToken:
    """Read side of a cancellation signal, backed by an asyncio.Event."""

    _event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _reason: str = ""

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def check(self) -> None:
        if self.is_cancelled:
            raise CancellationError()

    async def wait(self) -> None:
        await self._event.wait()

    def _fire(self, reason: str) -> None:
        self._reason = reason
        self._event.set()


@dataclass
class CancellationTokenSource:
    """Write side: owns a token and the listeners told when it fires."""

    _token: CancellationToken = field(default_factory=CancellationToken)
    _listeners: list[Callable[[str], None]] = field(default_factory=list, repr=False)

    @property
    def token(self) -> CancellationToken:
        return self._token

    def on_cancel(self, listener: Callable[[str], None]) -> None:
        """Call ``listener(reason)`` once cancellation fires (immediately if it already has)."""
        if self._token.is_cancelled:
            listener(self._token.reason)
        else:
            self._listeners.append(listener)

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the token. Later calls are ignored."""
        if self._token.is_cancelled:
            return
        self._token._fire(reason)
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(reason)


def install_interrupt_handler(
    source: CancellationTokenSource,
    loop: asyncio.AbstractEventLoop | None = None,
) -> Callable[[], None]:
    """Cancel ``source`` on the first SIGINT, restore default handling for the second.

    Returns a callable that removes the handler. On platforms without
    ``add_signal_handler`` this is a no-op and Ctrl-C raises as usual.
    """
    loop = loop or asyncio.get_running_loop()

    def remove() -> None:
        loop.remove_signal_handler(signal.SIGINT)

    def on_interrupt() -> None:
        logger.warning("Interrupt received, stopping agents (press Ctrl-C again to force)")
        source.cancel("interrupted")
        remove()

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except NotImplementedError:
        return lambda: None
    return remove
