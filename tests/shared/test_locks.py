import asyncio

import pytest

from app.shared.locks import KeyedLocks


@pytest.mark.asyncio
async def test_same_key_is_serialised() -> None:
    locks = KeyedLocks()
    running = 0
    overlap = 0

    async def work() -> None:
        nonlocal running, overlap
        async with locks.hold("p1"):
            running += 1
            overlap = max(overlap, running)
            await asyncio.sleep(0)
            running -= 1

    await asyncio.gather(*(work() for _ in range(5)))

    assert overlap == 1
    assert "p1" not in locks


@pytest.mark.asyncio
async def test_different_keys_do_not_wait_for_each_other() -> None:
    locks = KeyedLocks()
    gate = asyncio.Event()

    async def hold_p1() -> None:
        async with locks.hold("p1"):
            await gate.wait()

    task = asyncio.create_task(hold_p1())
    await asyncio.sleep(0)

    async with locks.hold("p2"):
        assert "p1" in locks
        assert len(locks) == 2
    gate.set()
    await task

    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_is_kept_while_someone_waits() -> None:
    locks = KeyedLocks()
    order: list[str] = []
    first_in = asyncio.Event()
    release = asyncio.Event()

    async def first() -> None:
        async with locks.hold("p1"):
            first_in.set()
            await release.wait()
            order.append("first")

    async def second() -> None:
        await first_in.wait()
        async with locks.hold("p1"):
            order.append("second")

    tasks = [asyncio.create_task(first()), asyncio.create_task(second())]
    await first_in.wait()
    await asyncio.sleep(0)
    release.set()
    await asyncio.gather(*tasks)

    assert order == ["first", "second"]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_is_dropped_when_the_body_raises() -> None:
    locks = KeyedLocks()

    with pytest.raises(RuntimeError):
        async with locks.hold("p1"):
            raise RuntimeError("boom")

    assert "p1" not in locks
