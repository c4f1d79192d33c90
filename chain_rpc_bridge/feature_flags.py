"""Runtime feature flags."""

from __future__ import annotations

from dataclasses import dataclass

from .logging_utils import env_flag


@dataclass(frozen=True)
class FeatureFlags:
    load_database: bool = True
    save_database: bool = False
    # Process-wide exit when a client request cannot be handed to the engine.
    exit_on_forward_error: bool = False

    @classmethod
    def from_env(cls) -> "FeatureFlags":
        return cls(
            load_database=env_flag("FF_LOAD_DATABASE", True),
            save_database=env_flag("FF_SAVE_DATABASE", False),
            exit_on_forward_error=env_flag("FF_EXIT_ON_FORWARD_ERROR", False),
        )
