"""
Refresh Coordination

Prevents overlapping refreshes of the same kind (channel directory, program
guide) whether they are triggered by the scheduler or by a manual request.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any


logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """
    Runs at most one refresh per name at a time.

    A request arriving while the same refresh is in flight is skipped rather
    than queued, so a slow provider never piles up refresh cycles.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, name: str) -> asyncio.Lock:
        return self._locks.setdefault(name, asyncio.Lock())

    async def execute(self, name: str, refresh_func: Callable[[], Awaitable[Any]]) -> dict:
        """
        Execute a refresh with concurrency protection.

        Args:
            name: Refresh kind, e.g. "channels" or "epg"
            refresh_func: Async callable performing the refresh

        Returns:
            Status dictionary; "skipped" if the refresh was already running

        Raises:
            Any exception raised by refresh_func
        """
        lock = self._lock(name)
        if lock.locked():
            logger.warning("%s refresh already in progress, skipping this request", name)
            return {
                "status": "skipped",
                "message": f"{name} refresh already in progress",
            }

        async with lock:
            result = await refresh_func()
            return {"status": "success", "result": result}

    def is_running(self, name: str) -> bool:
        return self._lock(name).locked()
