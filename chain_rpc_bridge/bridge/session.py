"""Per-connection chain session: the engine handle(s) one client owns."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import List, Optional

from ..chain_specs import ChainSpecEntry, ChainSpecRegistry
from ..engine import AddChainOptions, ChainHandle, Engine
from ..errors import AddChainError, ConfigError, SessionStateError


class SessionState(str, enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    ESTABLISHED = "established"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


class SessionKind(str, enum.Enum):
    RELAY_ONLY = "relay_only"
    RELAY_WITH_PARACHAIN = "relay_with_parachain"


@dataclass(frozen=True)
class ReleaseResult:
    role: str
    chain_id: str
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChainSession:
    """Owns the relay handle and, for parachains, the parachain handle.

    Handles are never shared between sessions, even when two clients ask for
    the same chain id.
    """

    def __init__(self, entry: ChainSpecEntry, *, connection_id: str = "") -> None:
        self.entry = entry
        self.connection_id = connection_id
        self.logger = logging.getLogger("chain_rpc_bridge.session")
        self.state = SessionState.IDLE
        self.kind: Optional[SessionKind] = None
        self.relay: Optional[ChainHandle] = None
        self.parachain: Optional[ChainHandle] = None
        self._relay_chain_id = entry.id
        self.failure: Optional[BaseException] = None

    @property
    def chain_id(self) -> str:
        return self.entry.id

    @property
    def is_established(self) -> bool:
        return self.state is SessionState.ESTABLISHED

    @property
    def rpc_handle(self) -> ChainHandle:
        """The handle client JSON-RPC traffic goes to."""
        if self.state is not SessionState.ESTABLISHED:
            raise SessionStateError(f"session for '{self.chain_id}' is {self.state.value}")
        handle = self.parachain if self.kind is SessionKind.RELAY_WITH_PARACHAIN else self.relay
        if handle is None:
            raise SessionStateError(f"session for '{self.chain_id}' has no JSON-RPC handle")
        return handle

    async def establish(self, engine: Engine, registry: ChainSpecRegistry) -> SessionKind:
        if self.state is not SessionState.IDLE:
            raise SessionStateError(f"cannot establish a session that is {self.state.value}")
        self.state = SessionState.RESOLVING

        try:
            if self.entry.relay_chain_id is None:
                self.relay = await self._add_chain(engine, AddChainOptions(chain_spec=self.entry.spec_content))
                self.kind = SessionKind.RELAY_ONLY
            else:
                relay_entry = registry.resolve(self.entry.relay_chain_id)
                if relay_entry is None:
                    raise ConfigError(f"couldn't find relay chain '{self.entry.relay_chain_id}'")
                self._relay_chain_id = relay_entry.id
                self.relay = await self._add_chain(
                    engine,
                    AddChainOptions(chain_spec=relay_entry.spec_content, disable_json_rpc=True),
                )
                self.parachain = await self._add_chain(
                    engine,
                    AddChainOptions(chain_spec=self.entry.spec_content, potential_relay_chains=(self.relay,)),
                )
                self.kind = SessionKind.RELAY_WITH_PARACHAIN
        except (ConfigError, AddChainError) as exc:
            self._fail(exc)
            raise
        except asyncio.CancelledError as exc:
            self._fail(exc)
            raise

        self.state = SessionState.ESTABLISHED
        self.logger.debug(
            "session established",
            extra={"extra_fields": self._fields(kind=self.kind.value)},
        )
        return self.kind

    def close(self) -> List[ReleaseResult]:
        """Release every handle, parachain first. Safe to call repeatedly.

        A failed session has already released what it added and stays failed.
        """
        if self.state in (SessionState.CLOSED, SessionState.CLOSING, SessionState.FAILED):
            return []
        if self.state is SessionState.RESOLVING:
            raise SessionStateError("cannot close a session while its chains are being added")
        self.state = SessionState.CLOSING
        results = self._release_all()
        self.state = SessionState.CLOSED
        return results

    async def _add_chain(self, engine: Engine, options: AddChainOptions) -> ChainHandle:
        try:
            return await engine.add_chain(options)
        except AddChainError:
            raise
        except Exception as exc:
            raise AddChainError(f"engine rejected chain: {exc}") from exc

    def _fail(self, exc: BaseException) -> None:
        # Nothing added for a failed session may outlive it.
        self._release_all()
        self.failure = exc
        self.state = SessionState.FAILED
        self.logger.warning(
            "session establishment failed",
            extra={"extra_fields": self._fields(error=str(exc))},
        )

    def _release_all(self) -> List[ReleaseResult]:
        results: List[ReleaseResult] = []
        if self.parachain is not None:
            results.append(self._release("parachain", self.chain_id, self.parachain))
            self.parachain = None
        if self.relay is not None:
            results.append(self._release("relay", self._relay_chain_id, self.relay))
            self.relay = None
        return results

    def _release(self, role: str, chain_id: str, handle: ChainHandle) -> ReleaseResult:
        try:
            handle.remove()
        except Exception as exc:
            self.logger.warning(
                "failed to remove chain",
                extra={"extra_fields": self._fields(role=role, removed_chain_id=chain_id, error=str(exc))},
            )
            return ReleaseResult(role=role, chain_id=chain_id, error=exc)
        return ReleaseResult(role=role, chain_id=chain_id)

    def _fields(self, **extra: object) -> dict:
        fields = {"chain_id": self.chain_id, "connection_id": self.connection_id}
        fields.update(extra)
        return fields
