"""Tests for the rate limited work queue."""

import asyncio

import pytest

from addon_deploy.exceptions import QueueShutDownError
from addon_deploy.workqueue import RateLimitingQueue


@pytest.fixture
def queue() -> RateLimitingQueue:
    """Fixture for a queue with short retry delays."""
    return RateLimitingQueue(base_delay=0.01, max_delay=0.05)


async def test_add_coalesces(queue: RateLimitingQueue) -> None:
    """Test a key added several times is handed out once."""
    queue.add("cluster1/foo")
    queue.add("cluster1/foo")
    queue.add("cluster1/bar")
    assert len(queue) == 2
    assert await queue.get() == "cluster1/foo"
    assert await queue.get() == "cluster1/bar"
    assert len(queue) == 0


async def test_key_processed_once_at_a_time(queue: RateLimitingQueue) -> None:
    """Test a key added while processing is handed out again after done."""
    queue.add("cluster1/foo")
    key = await queue.get()
    queue.add(key)
    queue.add(key)
    assert len(queue) == 0
    assert not queue.is_idle()

    queue.done(key)
    assert len(queue) == 1
    assert await queue.get() == key
    queue.done(key)
    assert queue.is_idle()


async def test_get_waits_for_key(queue: RateLimitingQueue) -> None:
    """Test a waiting worker is woken up when a key is added."""
    task = asyncio.create_task(queue.get())
    await asyncio.sleep(0)
    assert not task.done()
    queue.add("cluster1/foo")
    assert await asyncio.wait_for(task, timeout=1) == "cluster1/foo"


async def test_backoff(queue: RateLimitingQueue) -> None:
    """Test the retry delay doubles up to the limit and resets when forgotten."""
    assert [queue.when("cluster1/foo") for _ in range(5)] == pytest.approx(
        [0.01, 0.02, 0.04, 0.05, 0.05]
    )
    assert queue.num_requeues("cluster1/foo") == 5
    assert queue.num_requeues("cluster1/bar") == 0
    queue.forget("cluster1/foo")
    assert queue.num_requeues("cluster1/foo") == 0
    assert queue.when("cluster1/foo") == pytest.approx(0.01)


def test_backoff_overflow() -> None:
    """Test very large failure counts are capped at the limit."""
    queue = RateLimitingQueue(base_delay=1.0, max_delay=10.0)
    for _ in range(2000):
        delay = queue.when("cluster1/foo")
    assert delay == 10.0


async def test_add_rate_limited(queue: RateLimitingQueue) -> None:
    """Test a failed key is handed out again after its backoff."""
    queue.add_rate_limited("cluster1/foo")
    assert len(queue) == 0
    assert not queue.is_idle()
    assert await asyncio.wait_for(queue.get(), timeout=1) == "cluster1/foo"
    assert queue.num_requeues("cluster1/foo") == 1


async def test_add_after(queue: RateLimitingQueue) -> None:
    """Test adding a key after a delay."""
    queue.add_after("cluster1/foo", 0.01)
    queue.add_after("cluster1/foo", 10)
    assert await asyncio.wait_for(queue.get(), timeout=1) == "cluster1/foo"
    queue.done("cluster1/foo")
    assert queue.is_idle()


async def test_wait_idle(queue: RateLimitingQueue) -> None:
    """Test waiting until all keys were processed."""
    await asyncio.wait_for(queue.wait_idle(), timeout=1)

    queue.add("cluster1/foo")
    waiter = asyncio.create_task(queue.wait_idle())
    key = await queue.get()
    await asyncio.sleep(0)
    assert not waiter.done()
    queue.done(key)
    await asyncio.wait_for(waiter, timeout=1)


async def test_shut_down(queue: RateLimitingQueue) -> None:
    """Test shutting down releases waiting workers."""
    task = asyncio.create_task(queue.get())
    await asyncio.sleep(0)
    queue.add_after("cluster1/foo", 10)
    queue.shut_down()
    assert queue.shutting_down
    with pytest.raises(QueueShutDownError):
        await asyncio.wait_for(task, timeout=1)
    with pytest.raises(QueueShutDownError):
        await queue.get()

    # Keys are no longer accepted
    queue.add("cluster1/foo")
    queue.add_rate_limited("cluster1/foo")
    assert len(queue) == 0
    assert queue.is_idle()


async def test_cancelled_getter(queue: RateLimitingQueue) -> None:
    """Test a cancelled worker does not lose a key."""
    first = asyncio.create_task(queue.get())
    second = asyncio.create_task(queue.get())
    await asyncio.sleep(0)
    first.cancel()
    queue.add("cluster1/foo")
    with pytest.raises(asyncio.CancelledError):
        await first
    assert await asyncio.wait_for(second, timeout=1) == "cluster1/foo"
