"""Interface to the multi-chain light-client engine.

The bridge never talks to a network itself. Every chain it serves is added
to an engine which hands back a :class:`ChainHandle`; JSON-RPC text goes in
through ``send_json_rpc`` and comes back out of ``next_json_rpc_response``.

An engine binding is plugged in by import path (``package.module:factory``),
where ``factory(config)`` returns a started :class:`Engine`.
"""

from __future__ import annotations

import abc
import importlib
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from .constants import DEFAULT_CPU_RATE_LIMIT, ENGINE_LOG_LEVEL_PIPE
from .errors import ConfigError

LogCallback = Callable[[int, str, str], None]


@dataclass(frozen=True)
class EngineConfig:
    max_log_level: int = ENGINE_LOG_LEVEL_PIPE
    forbid_tcp: bool = False
    forbid_ws: bool = False
    forbid_non_local_ws: bool = False
    forbid_wss: bool = False
    cpu_rate_limit: float = DEFAULT_CPU_RATE_LIMIT
    log_callback: Optional[LogCallback] = field(default=None, compare=False)


class ChainHandle(abc.ABC):
    """One chain added to the engine."""

    @abc.abstractmethod
    def send_json_rpc(self, request: str) -> None:
        """Queue a JSON-RPC request. Raises if JSON-RPC is disabled or the chain was removed."""

    @abc.abstractmethod
    async def next_json_rpc_response(self) -> str:
        """Wait for the next JSON-RPC response. Raises once the chain has been removed."""

    @abc.abstractmethod
    def remove(self) -> None:
        """Release the chain."""


@dataclass(frozen=True)
class AddChainOptions:
    chain_spec: str
    database_content: str = ""
    disable_json_rpc: bool = False
    potential_relay_chains: Sequence[ChainHandle] = ()


class Engine(abc.ABC):
    @abc.abstractmethod
    async def add_chain(self, options: AddChainOptions) -> ChainHandle:
        """Add a chain. Raises :class:`~chain_rpc_bridge.errors.AddChainError` when rejected."""

    @abc.abstractmethod
    async def terminate(self) -> None:
        """Shut the engine down."""


EngineFactory = Callable[[EngineConfig], Engine]


def load_engine_factory(target: str) -> EngineFactory:
    """Resolve ``package.module:attribute`` to an engine factory."""
    module_name, sep, attr = (target or "").partition(":")
    if not module_name or not sep or not attr:
        raise ConfigError(f"engine must be given as 'module:factory', got '{target}'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"unable to import engine module '{module_name}': {exc}") from exc

    factory = module
    for part in attr.split("."):
        try:
            factory = getattr(factory, part)
        except AttributeError as exc:
            raise ConfigError(f"engine module '{module_name}' has no attribute '{attr}'") from exc

    if not callable(factory):
        raise ConfigError(f"engine factory '{target}' is not callable")
    return factory  # type: ignore[return-value]
