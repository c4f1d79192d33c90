"""Shared constants for the chain JSON-RPC bridge."""

from __future__ import annotations

DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_LISTEN_PORT = 9944
DEFAULT_DATABASE_PATH = "database.json"

ENGINE_ENV_VAR = "CHAIN_BRIDGE_ENGINE"

# Engine verbosity, 1 (errors only) to 5 (trace).
ENGINE_LOG_LEVEL_TTY = 3
ENGINE_LOG_LEVEL_PIPE = 4
DEFAULT_CPU_RATE_LIMIT = 0.5

# WebSocket close codes (RFC 6455 section 7.4.1).
CLOSE_PROTOCOL_ERROR = 1002
CLOSE_INTERNAL_ERROR = 1011

DATABASE_SAVE_INTERVAL_SEC = 5.0
FINALIZED_DATABASE_REQUEST = '{"jsonrpc":"2.0","id":1,"method":"chainHead_unstable_finalizedDatabase","params":[]}'

EXPLORER_URL_TEMPLATE = "https://polkadot.js.org/apps/?rpc=ws%3A%2F%2F127.0.0.1%3A{port}%2F{chain_id}"

# Metric counter names.
METRIC_CONNECTIONS_ACCEPTED = "connections.accepted"
METRIC_CONNECTIONS_REJECTED = "connections.rejected"
METRIC_SESSIONS_ESTABLISHED = "sessions.established"
METRIC_SESSIONS_FAILED = "sessions.failed"
METRIC_MESSAGES_INBOUND = "messages.inbound"
METRIC_MESSAGES_OUTBOUND = "messages.outbound"
METRIC_BINARY_REJECTED = "frames.binary_rejected"
METRIC_FORWARD_ERRORS = "forward.errors"
METRIC_RELEASE_FAILED = "handles.release_failed"
