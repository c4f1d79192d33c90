"""Process-wide state shared with every connection handler."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from ..chain_specs import ChainSpecRegistry
from ..engine import ChainHandle, Engine
from ..feature_flags import FeatureFlags
from ..observability import MetricsStore


@dataclass
class BridgeContext:
    registry: ChainSpecRegistry
    engine: Engine
    flags: FeatureFlags = field(default_factory=FeatureFlags)
    metrics: MetricsStore = field(default_factory=MetricsStore)
    default_chain: Optional[ChainHandle] = None
    exit_code: int = 0
    shutdown_requested: asyncio.Event = field(default_factory=asyncio.Event)

    def request_shutdown(self, exit_code: int = 0) -> None:
        if not self.shutdown_requested.is_set():
            self.exit_code = exit_code
        self.shutdown_requested.set()
