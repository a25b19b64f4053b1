"""
Tests for the client details cache and the per-slot locks.
"""

import asyncio

import pytest

from clinicagenda.services.client_cache import ClientInfo, ClientInfoCache
from clinicagenda.services.slot_locks import SlotLockRegistry


class FakeTimer:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestClientInfoCache:
    def test_lookup_by_any_phone_format(self):
        cache = ClientInfoCache()
        cache.put("+52 1 55 1234 5678", "Ana", "ana@example.com")

        assert cache.get("5512345678") == ClientInfo(name="Ana", email="ana@example.com")

    def test_entries_expire(self):
        timer = FakeTimer()
        cache = ClientInfoCache(ttl_seconds=60, timer=timer)
        cache.put("5512345678", "Ana", "ana@example.com")

        timer.now = 61

        assert cache.get("5512345678") is None
        assert len(cache) == 0

    def test_least_recently_used_is_evicted(self):
        cache = ClientInfoCache(max_entries=2)
        cache.put("5500000001", "Uno", "uno@example.com")
        cache.put("5500000002", "Dos", "dos@example.com")
        cache.get("5500000001")

        cache.put("5500000003", "Tres", "tres@example.com")

        assert cache.get("5500000002") is None
        assert cache.get("5500000001").name == "Uno"
        assert len(cache) == 2

    def test_unusable_phone_is_ignored(self):
        cache = ClientInfoCache()
        cache.put("123", "Nadie", "nadie@example.com")

        assert len(cache) == 0
        assert cache.get("123") is None

    def test_max_entries_must_be_positive(self):
        with pytest.raises(ValueError):
            ClientInfoCache(max_entries=0)


class TestSlotLockRegistry:
    def test_same_slot_is_serialized(self):
        """The second holder only enters after the first one left."""
        locks = SlotLockRegistry()
        order = []

        async def hold(name):
            async with locks.hold("1", "2025-01-13", 11):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        async def main():
            await asyncio.gather(hold("a"), hold("b"))

        asyncio.run(main())

        assert order == ["a-in", "a-out", "b-in", "b-out"]
        assert locks.active() == 0

    def test_different_slots_do_not_wait(self):
        locks = SlotLockRegistry()

        async def main():
            async with locks.hold("1", "2025-01-13", 11):
                async with locks.hold("1", "2025-01-13", 12):
                    return locks.active()

        assert asyncio.run(main()) == 2
        assert locks.active() == 0
