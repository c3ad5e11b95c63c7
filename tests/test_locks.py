"""
Tests for per-record mutual exclusion.
"""

import asyncio

import pytest

from poolpal.ledger import KeyedLock


class TestKeyedLock:

    @pytest.mark.asyncio
    async def test_serializes_same_key(self):
        locks = KeyedLock()
        trace = []

        async def worker(name):
            async with locks.hold("order:1"):
                trace.append(f"{name}-in")
                await asyncio.sleep(0.01)
                trace.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert trace in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    @pytest.mark.asyncio
    async def test_different_keys_interleave(self):
        locks = KeyedLock()
        inside = asyncio.Event()
        release = asyncio.Event()

        async def first():
            async with locks.hold("order:1"):
                inside.set()
                await release.wait()

        task = asyncio.create_task(first())
        await inside.wait()
        async with locks.hold("order:2"):
            assert locks.locked("order:1")
        release.set()
        await task

    @pytest.mark.asyncio
    async def test_reentrant_within_task(self):
        locks = KeyedLock()
        async with locks.hold("order:1"):
            async with locks.hold("order:1"):
                assert locks.locked("order:1")
        assert not locks.locked("order:1")

    @pytest.mark.asyncio
    async def test_idle_keys_dropped(self):
        locks = KeyedLock()
        async with locks.hold("order:1"):
            assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("order:1"):
                raise RuntimeError("boom")
        assert not locks.locked("order:1")
        assert len(locks) == 0
