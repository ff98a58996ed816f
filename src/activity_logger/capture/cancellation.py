"""
activity_logger.capture.cancellation

Client-disconnect observation for a single request.

Responsibilities:
- Wrap the ASGI `receive` callable and record `http.disconnect` as a cancellation signal.
- Poll for a pending disconnect without blocking and without losing messages.
- Replay buffered request messages to the downstream app in their original order.
"""

from __future__ import annotations

from collections import deque

import anyio
from starlette.types import Message, Receive


class DisconnectWatcher:
    """
    Drop-in `receive` for the downstream app.

    The watcher only observes cancellation; it never originates it. Once the real
    response has been fully sent, a later `http.disconnect` is the normal end of the
    exchange and no longer counts as a cancellation.
    """

    def __init__(self, receive: Receive) -> None:
        self._receive = receive
        self._pending: deque[Message] = deque()
        self._disconnected = False
        self._response_finished = False

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    def response_finished(self) -> None:
        self._response_finished = True

    async def __call__(self) -> Message:
        if self._pending:
            return self._pending.popleft()
        message = await self._receive()
        self._observe(message)
        return message

    async def read_ahead(self) -> Message:
        """
        Read the next upstream message and queue it for the downstream app.
        """

        message = await self._receive()
        self._observe(message)
        self._pending.append(message)
        return message

    async def poll(self) -> bool:
        if self._disconnected or self._response_finished:
            return self._disconnected
        message: Message | None = None
        # Same trick as Starlette's Request.is_disconnected: let receive() run up to its
        # first suspension point, then give up.
        with anyio.CancelScope() as cs:
            cs.cancel()
            message = await self._receive()
        if message is not None:
            self._observe(message)
            self._pending.append(message)
        return self._disconnected

    def _observe(self, message: Message) -> None:
        if message.get("type") == "http.disconnect" and not self._response_finished:
            self._disconnected = True


# --- Module Notes -----------------------------------------------------------
# Most ASGI servers answer receive() with http.disconnect as soon as the response is
# complete, which is why `response_finished` gates the signal.
