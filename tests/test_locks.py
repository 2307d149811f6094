"""
Tests for ExecutionLocks: per-token serialization and idle lock cleanup.
"""
import asyncio

import pytest

from swapcache.infra.locks import ExecutionLocks
from tests.fakes import settle


class TestExecutionLocks:
    @pytest.mark.asyncio
    async def test_released_locks_are_dropped(self):
        locks = ExecutionLocks()
        for i in range(50):
            async with locks.hold(f"T{i}"):
                assert len(locks) == 1
        assert len(locks) == 0
        assert locks._users == {}

    @pytest.mark.asyncio
    async def test_lock_kept_while_another_holder_waits(self):
        locks = ExecutionLocks()
        order = []
        release_first = asyncio.Event()

        async def first():
            async with locks.hold("T"):
                order.append("first-in")
                await release_first.wait()
                order.append("first-out")

        async def second():
            async with locks.hold("T"):
                order.append("second-in")

        t1 = asyncio.create_task(first())
        await settle()
        t2 = asyncio.create_task(second())
        await settle()
        assert order == ["first-in"]
        assert locks._users["T"] == 2

        release_first.set()
        await asyncio.gather(t1, t2)

        assert order == ["first-in", "first-out", "second-in"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_error_inside_hold_still_releases(self):
        locks = ExecutionLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("T"):
                raise RuntimeError("boom")
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_tokens_do_not_block(self):
        locks = ExecutionLocks()
        async with locks.hold("A"):
            async with locks.hold("B"):
                assert len(locks) == 2
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_disabled_registers_nothing(self):
        locks = ExecutionLocks(enabled=False)
        async with locks.hold("T"):
            async with locks.hold("T"):
                assert len(locks) == 0
