"""Default-chain database snapshot: read at startup, optionally saved periodically."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Union

from ..constants import DATABASE_SAVE_INTERVAL_SEC, FINALIZED_DATABASE_REQUEST
from ..engine import ChainHandle

logger = logging.getLogger("chain_rpc_bridge.database")


def read_database(path: Union[str, Path]) -> str:
    """Return the stored database content, or an empty string when there is none."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("no database loaded", extra={"extra_fields": {"path": str(path), "reason": str(exc)}})
        return ""


class DatabaseSaver:
    """Periodically asks the default chain for its finalized database and stores it.

    The default chain is never exposed to clients, so every response read
    from its handle here answers our own request.
    """

    def __init__(
        self,
        handle: ChainHandle,
        path: Union[str, Path],
        *,
        interval_sec: float = DATABASE_SAVE_INTERVAL_SEC,
    ) -> None:
        self._handle = handle
        self._path = Path(path)
        self._interval_sec = float(interval_sec)
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop(), name="database-saver")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def save_once(self) -> bool:
        self._handle.send_json_rpc(FINALIZED_DATABASE_REQUEST)
        raw = await self._handle.next_json_rpc_response()
        try:
            result = json.loads(raw).get("result")
        except (json.JSONDecodeError, AttributeError):
            result = None
        if not isinstance(result, str):
            logger.warning("unexpected finalized database response", extra={"extra_fields": {"response": raw[:200]}})
            return False
        self._path.write_text(result, encoding="utf-8")
        return True

    async def _loop(self) -> None:
        while True:
            try:
                await self.save_once()
            except asyncio.CancelledError:
                raise
            except OSError as exc:
                logger.warning("failed to write database", extra={"extra_fields": {"path": str(self._path), "error": str(exc)}})
            except Exception as exc:
                logger.info("database saver stopped", extra={"extra_fields": {"reason": str(exc)}})
                return
            await asyncio.sleep(self._interval_sec)
