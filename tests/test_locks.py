"""Tests for the per-key lock registry."""

from __future__ import annotations

import anyio
import pytest

from chatgate.locks import LockRegistry


@pytest.mark.anyio
async def test_same_key_runs_in_arrival_order() -> None:
    registry = LockRegistry()
    order: list[str] = []
    release = anyio.Event()

    async def first() -> None:
        async with registry.hold("user-1"):
            order.append("first")
            await release.wait()

    async def later(name: str) -> None:
        async with registry.hold("user-1"):
            order.append(name)

    async with anyio.create_task_group() as tg:
        tg.start_soon(first)
        await anyio.sleep(0.01)
        tg.start_soon(later, "second")
        await anyio.sleep(0.01)
        tg.start_soon(later, "third")
        await anyio.sleep(0.01)
        assert order == ["first"]
        assert "user-1" in registry
        release.set()

    assert order == ["first", "second", "third"]
    assert len(registry) == 0


@pytest.mark.anyio
async def test_different_keys_do_not_block_each_other() -> None:
    registry = LockRegistry()
    release = anyio.Event()
    other_done = anyio.Event()

    async def blocker() -> None:
        async with registry.hold("a"):
            await release.wait()

    async def other() -> None:
        async with registry.hold("b"):
            other_done.set()

    async with anyio.create_task_group() as tg:
        tg.start_soon(blocker)
        await anyio.sleep(0.01)
        tg.start_soon(other)
        with anyio.fail_after(1):
            await other_done.wait()
        assert len(registry) == 1
        release.set()

    assert len(registry) == 0


@pytest.mark.anyio
async def test_failed_holder_releases_the_key() -> None:
    registry = LockRegistry()

    async def boom() -> None:
        raise RuntimeError("boom")

    async def ok(value: int) -> int:
        return value * 2

    with pytest.raises(RuntimeError):
        await registry.run("key", boom)
    assert await registry.run("key", ok, 21) == 42
    assert len(registry) == 0
