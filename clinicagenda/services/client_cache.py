"""
Bounded cache of recently seen client details, keyed by normalized phone.

Entries are hints for pre-filling a booking, never the source of truth.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from ..domain.validation import normalize_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientInfo:
    name: str
    email: str


class ClientInfoCache:
    """LRU cache with a per-entry time to live."""

    def __init__(
        self,
        max_entries: int = 500,
        ttl_seconds: float = 86400,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._timer = timer
        self._entries: "OrderedDict[str, Tuple[float, ClientInfo]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, phone: str) -> Optional[ClientInfo]:
        key = normalize_phone(phone)
        if not key or key not in self._entries:
            return None

        stored_at, info = self._entries[key]
        if self._timer() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return info

    def put(self, phone: str, name: str, email: str) -> None:
        key = normalize_phone(phone)
        if not key:
            return
        self._entries[key] = (self._timer(), ClientInfo(name=name, email=email))
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Client cache full, evicted %s", evicted)

    def clear(self) -> None:
        self._entries.clear()
