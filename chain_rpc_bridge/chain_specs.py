"""Load chain-spec documents and index them by chain id."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .errors import ConfigError

logger = logging.getLogger("chain_rpc_bridge.chain_specs")


@dataclass(frozen=True)
class ChainSpecEntry:
    id: str
    spec_content: str
    relay_chain_id: Optional[str] = None

    @property
    def is_parachain(self) -> bool:
        return self.relay_chain_id is not None


class ChainSpecRegistry:
    """Read-only id -> chain-spec lookup, built once at startup.

    The first document loaded is the default chain: the one attached to the
    engine before any client connects.
    """

    def __init__(self, entries: Dict[str, ChainSpecEntry], default_chain_id: str) -> None:
        if default_chain_id not in entries:
            raise ConfigError(f"default chain '{default_chain_id}' is not in the registry")
        self._entries = dict(entries)
        self._default_chain_id = default_chain_id

    @classmethod
    def load(cls, paths: Iterable[Union[str, Path]]) -> "ChainSpecRegistry":
        entries: Dict[str, ChainSpecEntry] = {}
        default_chain_id: Optional[str] = None

        for path in paths:
            entry = _load_entry(Path(path))
            if entry.id in entries:
                logger.warning(
                    "duplicate chain id, later chain spec wins",
                    extra={"extra_fields": {"chain_id": entry.id, "path": str(path)}},
                )
            entries[entry.id] = entry
            if default_chain_id is None:
                default_chain_id = entry.id

        if default_chain_id is None:
            raise ConfigError("at least one chain spec is required")

        logger.info(
            "chain specs loaded",
            extra={"extra_fields": {"chain_ids": list(entries), "default_chain_id": default_chain_id}},
        )
        return cls(entries, default_chain_id)

    @property
    def default_chain_id(self) -> str:
        return self._default_chain_id

    @property
    def default_entry(self) -> ChainSpecEntry:
        return self._entries[self._default_chain_id]

    def resolve(self, chain_id: str) -> Optional[ChainSpecEntry]:
        return self._entries.get(chain_id)

    def ids(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, chain_id: object) -> bool:
        return chain_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def _load_entry(path: Path) -> ChainSpecEntry:
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"unable to read chain spec {path}: {exc}") from exc

    try:
        decoded = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"chain spec {path} is not valid json: {exc}") from exc

    if not isinstance(decoded, dict):
        raise ConfigError(f"chain spec {path} must be a json object")

    chain_id = decoded.get("id")
    if not isinstance(chain_id, str) or not chain_id:
        raise ConfigError(f"chain spec {path} has no 'id'")

    relay_chain = decoded.get("relay_chain")
    if relay_chain is not None and not isinstance(relay_chain, str):
        raise ConfigError(f"chain spec {path} has a non-string 'relay_chain'")

    return ChainSpecEntry(id=chain_id, spec_content=content, relay_chain_id=relay_chain or None)
