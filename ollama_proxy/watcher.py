"""Config file watcher.

Polls the config file's modification time and asks the ConfigStore to
reload when it changes.
"""

import asyncio
import logging
import os
from typing import Optional

from ollama_proxy.config import ConfigStore

logger = logging.getLogger("ollama_proxy")


class ConfigWatcher:
    """Background task that reloads the store when the config file changes."""

    def __init__(self, store: ConfigStore, interval: float = 1.0) -> None:
        self.store = store
        self.interval = interval
        self._last_mtime = self._current_mtime()
        self._task: Optional["asyncio.Task[None]"] = None

    def _current_mtime(self) -> Optional[float]:
        try:
            return os.stat(self.store.path).st_mtime
        except OSError:
            return None

    def check(self) -> bool:
        """Poll once. Returns True if a change was seen and reloaded."""
        mtime = self._current_mtime()
        if mtime is None or mtime == self._last_mtime:
            return False

        self._last_mtime = mtime
        return self.store.reload()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.check()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
            logger.info("Config watcher started for %s", self.store.path)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
