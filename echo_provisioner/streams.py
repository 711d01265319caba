"""Stream contract between the echo provisioner and its transport.

A stream carries responses to the client and, for provision calls, requests
from it.  Every stream owns a :class:`StreamContext` whose cancellation is the
only way a finished call returns: the handler sends what it has and then
waits on ``context.wait()``.

:class:`MemoryStream` is an in-process implementation used by the test suite
and by integration tests that drive the provisioner without a transport.
"""

from __future__ import annotations

import asyncio
from typing import Any, Generic, List, Optional, Protocol, TypeVar

from echo_provisioner.errors import StreamClosedError

RequestT = TypeVar("RequestT")
ResponseT = TypeVar("ResponseT")


class StreamContext:
    """Cooperative cancellation signal for one stream."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._error: Optional[BaseException] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, error: Optional[BaseException] = None) -> None:
        """Signal cancellation; the first call decides the associated error."""

        if self._event.is_set():
            return
        self._error = error
        self._event.set()

    def error(self) -> Optional[BaseException]:
        return self._error

    async def wait(self) -> None:
        await self._event.wait()


class ParseStream(Protocol):
    context: StreamContext

    async def send(self, response: Any) -> None:
        ...


class ProvisionStream(ParseStream, Protocol):
    async def recv(self) -> Any:
        ...


class MemoryStream(Generic[RequestT, ResponseT]):
    """Queue-backed bidirectional stream.

    ``push`` queues inbound requests for ``recv``; every ``send`` is appended
    to ``sent``.  ``close_send`` makes the next ``recv`` raise once the queue
    drains, mirroring a client that half-closes its side.
    """

    _EOF = object()

    def __init__(self, context: Optional[StreamContext] = None) -> None:
        self.context = context or StreamContext()
        self.sent: List[ResponseT] = []
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()
        self._sent_event = asyncio.Event()

    def push(self, request: RequestT) -> None:
        self._inbound.put_nowait(request)

    def close_send(self) -> None:
        self._inbound.put_nowait(self._EOF)

    async def recv(self) -> RequestT:
        if self.context.cancelled:
            raise StreamClosedError("recv on a cancelled stream")
        request = await self._inbound.get()
        if request is self._EOF:
            raise StreamClosedError("client closed the stream")
        return request

    async def send(self, response: ResponseT) -> None:
        if self.context.cancelled:
            raise StreamClosedError("send on a cancelled stream")
        self.sent.append(response)
        self._sent_event.set()

    async def wait_for_sent(self, count: int) -> List[ResponseT]:
        """Block until at least ``count`` responses have been sent."""

        while len(self.sent) < count:
            self._sent_event.clear()
            await self._sent_event.wait()
        return list(self.sent[:count])

    def cancel(self, error: Optional[BaseException] = None) -> None:
        self.context.cancel(error)
