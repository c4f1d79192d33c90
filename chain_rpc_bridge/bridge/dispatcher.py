"""Route client frames into a chain session and engine responses back out."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Union

from websockets.exceptions import ConnectionClosed

from ..constants import (
    METRIC_BINARY_REJECTED,
    METRIC_MESSAGES_INBOUND,
    METRIC_MESSAGES_OUTBOUND,
)
from ..engine import ChainHandle
from ..errors import ForwardError, ProtocolError, SessionStateError
from ..observability import MetricsStore
from .session import ChainSession

SendText = Callable[[str], Awaitable[None]]


class Dispatcher:
    """Message routing for one connection.

    Inbound text goes to the session's JSON-RPC handle. Outbound, a single
    relay task pulls responses from that handle and writes them to the
    connection until :meth:`stop` is called or the handle goes away.
    """

    def __init__(
        self,
        session: ChainSession,
        send: SendText,
        *,
        metrics: Optional[MetricsStore] = None,
    ) -> None:
        self.session = session
        self._send = send
        self._metrics = metrics or MetricsStore()
        self._closed = asyncio.Event()
        self._tasks: List[asyncio.Task[None]] = []
        self.logger = logging.getLogger("chain_rpc_bridge.dispatcher")

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        try:
            handle = self.session.rpc_handle
        except SessionStateError as exc:
            raise ForwardError(str(exc)) from exc
        task = asyncio.create_task(self._relay(handle), name=f"relay:{self.session.chain_id}")
        self._tasks.append(task)

    def route_inbound(self, message: Union[str, bytes]) -> None:
        if not isinstance(message, str):
            self._metrics.inc(METRIC_BINARY_REJECTED)
            raise ProtocolError("binary frames are not supported")

        try:
            handle = self.session.rpc_handle
        except SessionStateError as exc:
            raise ForwardError(f"dropped request: {exc}") from exc

        try:
            handle.send_json_rpc(message)
        except Exception as exc:
            raise ForwardError(f"unable to send request to '{self.session.chain_id}': {exc}") from exc
        self._metrics.inc(METRIC_MESSAGES_INBOUND)

    async def stop(self) -> None:
        self._closed.set()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _relay(self, handle: ChainHandle) -> None:
        while not self._closed.is_set():
            try:
                response = await handle.next_json_rpc_response()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # The handle has been removed; nothing more will come out of it.
                self.logger.debug(
                    "relay finished",
                    extra={"extra_fields": {"chain_id": self.session.chain_id, "reason": str(exc)}},
                )
                return

            if self._closed.is_set():
                return
            try:
                await self._send(response)
            except ConnectionClosed:
                return
            self._metrics.inc(METRIC_MESSAGES_OUTBOUND)
