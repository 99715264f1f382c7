import asyncio

import pytest

from pdf_chat.utils.keyed_lock import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized() -> None:
    locks = KeyedLock()
    order = []

    async def worker(name: str) -> None:
        async with locks.hold("doc1"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])


@pytest.mark.asyncio
async def test_different_keys_do_not_block_each_other() -> None:
    locks = KeyedLock()
    inside = asyncio.Event()

    async def holder() -> None:
        async with locks.hold("doc1"):
            await inside.wait()

    task = asyncio.create_task(holder())
    await asyncio.sleep(0)
    assert locks.is_locked("doc1")

    async with locks.hold("doc2"):
        assert locks.is_locked("doc2")

    inside.set()
    await task


@pytest.mark.asyncio
async def test_locks_are_released_after_use() -> None:
    locks = KeyedLock()
    async with locks.hold("doc1"):
        assert len(locks) == 1
    assert len(locks) == 0
    assert not locks.is_locked("doc1")


@pytest.mark.asyncio
async def test_lock_released_when_body_raises() -> None:
    locks = KeyedLock()
    with pytest.raises(RuntimeError):
        async with locks.hold("doc1"):
            raise RuntimeError("boom")
    assert len(locks) == 0
