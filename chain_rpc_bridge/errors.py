"""Bridge exception types."""

from __future__ import annotations


class BridgeError(RuntimeError):
    """Base class for bridge failures."""


class ConfigError(BridgeError):
    """Chain-spec, relay reference, or engine configuration problem."""


class AddChainError(BridgeError):
    """The engine rejected a chain."""


class ProtocolError(BridgeError):
    """A client sent a frame the bridge does not accept."""


class ForwardError(BridgeError):
    """JSON-RPC traffic could not be forwarded to or from a chain handle."""


class SessionStateError(BridgeError):
    """Operation not allowed in the session's current state."""
