"""Process lifecycle: default chain, listener, signal-driven shutdown."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional, Sequence, Union

from ..chain_specs import ChainSpecRegistry
from ..constants import DEFAULT_DATABASE_PATH, DEFAULT_LISTEN_HOST, DEFAULT_LISTEN_PORT
from ..engine import AddChainOptions, EngineConfig, EngineFactory
from ..errors import AddChainError, ConfigError
from ..feature_flags import FeatureFlags
from .context import BridgeContext
from .database import DatabaseSaver, read_database
from .server import BridgeServer

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class BridgeApp:
    def __init__(
        self,
        *,
        chain_spec_paths: Sequence[Union[str, Path]],
        engine_factory: EngineFactory,
        engine_config: Optional[EngineConfig] = None,
        host: str = DEFAULT_LISTEN_HOST,
        port: int = DEFAULT_LISTEN_PORT,
        database_path: Union[str, Path] = DEFAULT_DATABASE_PATH,
        flags: Optional[FeatureFlags] = None,
        handle_signals: bool = True,
    ) -> None:
        self.logger = logging.getLogger("chain_rpc_bridge.app")
        self._chain_spec_paths = list(chain_spec_paths)
        self._engine_factory = engine_factory
        self._engine_config = engine_config or EngineConfig()
        self._host = host
        self._port = int(port)
        self._database_path = Path(database_path)
        self._flags = flags or FeatureFlags.from_env()
        self._handle_signals = handle_signals

        self.context: Optional[BridgeContext] = None
        self.server: Optional[BridgeServer] = None
        self._saver: Optional[DatabaseSaver] = None
        self._signals_installed = False

    async def run(self) -> int:
        try:
            await self.start()
        except (ConfigError, AddChainError, OSError) as exc:
            self.logger.error("bridge startup failed", extra={"extra_fields": {"error": str(exc)}})
            await self.shutdown()
            return 1

        assert self.context is not None
        try:
            await self.context.shutdown_requested.wait()
        finally:
            await self.shutdown()
        return self.context.exit_code

    async def start(self) -> None:
        registry = ChainSpecRegistry.load(self._chain_spec_paths)
        engine = self._engine_factory(self._engine_config)
        context = BridgeContext(registry=registry, engine=engine, flags=self._flags)
        self.context = context

        # Syncing of the default chain starts before any client shows up.
        database = read_database(self._database_path) if self._flags.load_database else ""
        try:
            context.default_chain = await engine.add_chain(
                AddChainOptions(chain_spec=registry.default_entry.spec_content, database_content=database)
            )
        except AddChainError:
            raise
        except Exception as exc:
            raise AddChainError(f"engine rejected default chain '{registry.default_chain_id}': {exc}") from exc

        if self._flags.save_database:
            self._saver = DatabaseSaver(context.default_chain, self._database_path)
            self._saver.start()

        if self._handle_signals:
            self._install_signal_handlers(context)

        self.server = BridgeServer(context, host=self._host, port=self._port)
        await self.server.start()
        self.logger.info(
            "please visit one of:\n" + "\n".join(self.server.explorer_links()),
            extra={"extra_fields": {"chain_ids": registry.ids()}},
        )

    async def shutdown(self) -> None:
        """Stop accepting clients, release the default chain, then the engine."""
        context = self.context
        if self.server is not None:
            await self.server.stop()
            self.server = None
        if self._saver is not None:
            await self._saver.stop()
            self._saver = None
        self._remove_signal_handlers()

        if context is None:
            return
        if context.default_chain is not None:
            try:
                context.default_chain.remove()
            except Exception as exc:
                self.logger.warning("failed to remove default chain", extra={"extra_fields": {"error": str(exc)}})
            context.default_chain = None
        await self._terminate_engine()
        self.logger.info("bridge stopped", extra={"extra_fields": {"metrics": context.metrics.snapshot()}})

    async def _terminate_engine(self) -> None:
        context = self.context
        if context is None or context.engine is None:
            return
        engine, context.engine = context.engine, None  # type: ignore[assignment]
        try:
            await engine.terminate()
        except Exception:
            self.logger.exception("engine termination failed")

    def _install_signal_handlers(self, context: BridgeContext) -> None:
        loop = asyncio.get_running_loop()
        for signum in _SHUTDOWN_SIGNALS:
            loop.add_signal_handler(signum, context.request_shutdown)
        self._signals_installed = True

    def _remove_signal_handlers(self) -> None:
        if not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        for signum in _SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(signum)
        self._signals_installed = False
