"""WebSocket listener: one chain session per client connection."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from ..constants import (
    CLOSE_INTERNAL_ERROR,
    CLOSE_PROTOCOL_ERROR,
    DEFAULT_LISTEN_HOST,
    DEFAULT_LISTEN_PORT,
    EXPLORER_URL_TEMPLATE,
    METRIC_CONNECTIONS_ACCEPTED,
    METRIC_CONNECTIONS_REJECTED,
    METRIC_FORWARD_ERRORS,
    METRIC_RELEASE_FAILED,
    METRIC_SESSIONS_ESTABLISHED,
    METRIC_SESSIONS_FAILED,
)
from ..errors import AddChainError, ConfigError, ForwardError, ProtocolError
from .context import BridgeContext
from .dispatcher import Dispatcher
from .session import ChainSession


def chain_id_from_path(path: str) -> str:
    """The requested chain id is everything after the leading ``/``."""
    return path[1:] if path.startswith("/") else path


class BridgeServer:
    def __init__(
        self,
        context: BridgeContext,
        *,
        host: str = DEFAULT_LISTEN_HOST,
        port: int = DEFAULT_LISTEN_PORT,
    ) -> None:
        self.context = context
        self.host = host
        self.port = int(port)
        self.logger = logging.getLogger("chain_rpc_bridge.server")
        self._server: Optional[Server] = None

    @property
    def bound_port(self) -> int:
        if self._server is None:
            return self.port
        sockets = list(self._server.sockets)
        return int(sockets[0].getsockname()[1]) if sockets else self.port

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await serve(self.handle_connection, self.host, self.port)
        self.logger.info(
            "JSON-RPC server now listening",
            extra={"extra_fields": {"host": self.host, "port": self.bound_port}},
        )

    async def stop(self) -> None:
        server, self._server = self._server, None
        if server is None:
            return
        server.close()
        await server.wait_closed()

    async def handle_connection(self, connection: ServerConnection) -> None:
        metrics = self.context.metrics
        chain_id = chain_id_from_path(connection.request.path)
        fields = {
            "chain_id": chain_id,
            "connection_id": str(connection.id),
            "remote_address": _format_address(connection.remote_address),
        }

        entry = self.context.registry.resolve(chain_id)
        if entry is None:
            metrics.inc(METRIC_CONNECTIONS_REJECTED)
            self.logger.info("rejected connection for unknown chain", extra={"extra_fields": fields})
            await connection.close()
            return

        metrics.inc(METRIC_CONNECTIONS_ACCEPTED)
        self.logger.info("JSON-RPC client connected", extra={"extra_fields": fields})

        session = ChainSession(entry, connection_id=fields["connection_id"])
        try:
            established = await self._establish_until_closed(connection, session)
        except (ConfigError, AddChainError) as exc:
            metrics.inc(METRIC_SESSIONS_FAILED)
            self.logger.error("error while adding chain", extra={"extra_fields": dict(fields, error=str(exc))})
            await connection.close(CLOSE_INTERNAL_ERROR, "unable to add chain")
            session.close()
            return
        if not established:
            self.logger.info("client left while its chain was being added", extra={"extra_fields": fields})
            return
        metrics.inc(METRIC_SESSIONS_ESTABLISHED)

        dispatcher = Dispatcher(session, connection.send, metrics=metrics)
        dispatcher.start()
        try:
            await self._receive_loop(connection, dispatcher, fields)
        finally:
            await dispatcher.stop()
            for result in session.close():
                if not result.ok:
                    metrics.inc(METRIC_RELEASE_FAILED)
            self.logger.info("JSON-RPC client disconnected", extra={"extra_fields": fields})

    async def _establish_until_closed(self, connection: ServerConnection, session: ChainSession) -> bool:
        """Add the session's chains, giving up if the connection closes first.

        Server shutdown closes every connection, so a pending ``add_chain``
        never holds the listener open.
        """
        establishing = asyncio.create_task(session.establish(self.context.engine, self.context.registry))
        closed = asyncio.create_task(connection.wait_closed())
        try:
            await asyncio.wait({establishing, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closed.cancel()
            if not establishing.done():
                establishing.cancel()
            await asyncio.gather(establishing, closed, return_exceptions=True)

        if establishing.cancelled():
            return False
        establishing.result()
        return True

    async def _receive_loop(self, connection: ServerConnection, dispatcher: Dispatcher, fields: dict) -> None:
        try:
            async for message in connection:
                try:
                    dispatcher.route_inbound(message)
                except ProtocolError as exc:
                    self.logger.info("closing connection after binary frame", extra={"extra_fields": fields})
                    await connection.close(CLOSE_PROTOCOL_ERROR, str(exc))
                    return
                except ForwardError as exc:
                    self._on_forward_error(exc, fields)
                    await connection.close(CLOSE_INTERNAL_ERROR, "request forwarding failed")
                    return
        except ConnectionClosed:
            pass

    def _on_forward_error(self, exc: ForwardError, fields: dict) -> None:
        self.context.metrics.inc(METRIC_FORWARD_ERRORS)
        self.logger.error("error during JSON-RPC request", extra={"extra_fields": dict(fields, error=str(exc))})
        if self.context.flags.exit_on_forward_error:
            self.context.request_shutdown(exit_code=1)

    def explorer_links(self) -> List[str]:
        return [
            f"- {chain_id}: " + EXPLORER_URL_TEMPLATE.format(port=self.bound_port, chain_id=chain_id)
            for chain_id in self.context.registry.ids()
        ]


def _format_address(address: Any) -> str:
    if isinstance(address, (tuple, list)) and len(address) >= 2:
        return f"{address[0]}:{address[1]}"
    return str(address)
