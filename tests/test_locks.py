"""Tests for per-key asyncio locks."""

import asyncio

from vocabtrace.locks import KeyedLock


class TestKeyedLock:
    """Tests for KeyedLock."""

    def test_same_key_is_serialized(self):
        """Test holders of one key never overlap."""
        locks = KeyedLock()
        active = []
        overlaps = []

        async def worker():
            async with locks.hold("word"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                await asyncio.sleep(0)
                active.pop()

        async def scenario():
            await asyncio.gather(*(worker() for _ in range(5)))

        asyncio.run(scenario())
        assert overlaps == []

    def test_different_keys_run_concurrently(self):
        locks = KeyedLock()
        inside = set()
        seen_together = []

        async def worker(key):
            async with locks.hold(key):
                inside.add(key)
                await asyncio.sleep(0)
                seen_together.append(len(inside))
                await asyncio.sleep(0)
                inside.discard(key)

        async def scenario():
            await asyncio.gather(worker("a"), worker("b"))

        asyncio.run(scenario())
        assert max(seen_together) == 2

    def test_locks_are_dropped_when_idle(self):
        locks = KeyedLock()

        async def scenario():
            async with locks.hold("a"):
                assert len(locks) == 1

        asyncio.run(scenario())
        assert len(locks) == 0
