"""
Per-slot advisory locks held across the check-then-create booking steps.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple

SlotKey = Tuple[str, str, int]


class SlotLockRegistry:
    """
    One ``asyncio.Lock`` per (calendar, date, hour).

    Only serializes bookings inside this process; the calendar re-check stays
    the authoritative conflict detection.
    """

    def __init__(self) -> None:
        self._locks: Dict[SlotKey, asyncio.Lock] = {}
        self._waiters: Dict[SlotKey, int] = {}

    @asynccontextmanager
    async def hold(self, calendar_id: str, date: str, hour: int) -> AsyncIterator[None]:
        key = (calendar_id, date, hour)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def active(self) -> int:
        return len(self._locks)
