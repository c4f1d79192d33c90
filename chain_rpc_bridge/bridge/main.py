"""CLI entrypoint for chain-rpc-bridge."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import List, Optional

from ..constants import (
    DEFAULT_CPU_RATE_LIMIT,
    DEFAULT_DATABASE_PATH,
    DEFAULT_LISTEN_HOST,
    DEFAULT_LISTEN_PORT,
    ENGINE_ENV_VAR,
    ENGINE_LOG_LEVEL_PIPE,
    ENGINE_LOG_LEVEL_TTY,
)
from ..engine import EngineConfig, load_engine_factory
from ..errors import ConfigError
from ..feature_flags import FeatureFlags
from ..logging_utils import configure_logging, engine_log_callback
from .app import BridgeApp


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--chain-spec",
        dest="chain_specs",
        action="append",
        required=True,
        metavar="PATH",
        help="chain-spec file; repeat for more chains, the first one is the default chain",
    )
    parser.add_argument("--host", default=DEFAULT_LISTEN_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_LISTEN_PORT)
    parser.add_argument("--engine", default=os.getenv(ENGINE_ENV_VAR), help="engine factory as 'module:callable'")
    parser.add_argument("--database", default=DEFAULT_DATABASE_PATH)
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--engine-log-level", type=int, choices=range(1, 6), default=None)
    parser.add_argument("--cpu-rate-limit", type=float, default=DEFAULT_CPU_RATE_LIMIT)
    parser.add_argument("--forbid-tcp", action="store_true")
    parser.add_argument("--forbid-ws", action="store_true")
    parser.add_argument("--forbid-non-local-ws", action="store_true")
    parser.add_argument("--forbid-wss", action="store_true")
    return parser.parse_args(argv)


def build_engine_config(args: argparse.Namespace) -> EngineConfig:
    level = args.engine_log_level
    if level is None:
        level = ENGINE_LOG_LEVEL_TTY if sys.stdout.isatty() else ENGINE_LOG_LEVEL_PIPE
    return EngineConfig(
        max_log_level=level,
        forbid_tcp=args.forbid_tcp,
        forbid_ws=args.forbid_ws,
        forbid_non_local_ws=args.forbid_non_local_ws,
        forbid_wss=args.forbid_wss,
        cpu_rate_limit=args.cpu_rate_limit,
        log_callback=engine_log_callback(),
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        engine_factory = load_engine_factory(args.engine or "")
    except ConfigError as exc:
        print(f"chain-rpc-bridge: {exc}", file=sys.stderr)
        return 2

    app = BridgeApp(
        chain_spec_paths=args.chain_specs,
        engine_factory=engine_factory,
        engine_config=build_engine_config(args),
        host=args.host,
        port=args.port,
        database_path=args.database,
        flags=FeatureFlags.from_env(),
    )
    return asyncio.run(app.run())


if __name__ == "__main__":
    raise SystemExit(main())
