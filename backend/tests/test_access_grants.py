import time
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from giftlists.core.access_grants import SessionGrants, SessionGrantStore


@pytest.mark.anyio
async def test_memory_store_roundtrip():
    store = SessionGrantStore(redis_dsn="")
    grants = await store.load("sid-a")
    assert grants.list_ids == set()

    grants.add(5)
    await store.save(grants)
    assert grants.dirty is False

    reloaded = await store.load("sid-a")
    assert reloaded.has(5)
    other = await store.load("sid-b")
    assert not other.has(5)


@pytest.mark.anyio
async def test_memory_grants_expire():
    store = SessionGrantStore(redis_dsn="", ttl_seconds=10)

    grants = SessionGrants(session_id="sid-a")
    grants.add(7)
    await store.save(grants)
    assert (await store.load("sid-a")).has(7)

    store._memory["sid-a"][7] = time.monotonic() - 1
    assert not (await store.load("sid-a")).has(7)
    assert "sid-a" not in store._memory


@pytest.mark.anyio
async def test_clean_grants_are_not_written():
    store = SessionGrantStore(redis_dsn="")
    await store.save(SessionGrants(session_id="sid-a", list_ids={3}))
    assert not (await store.load("sid-a")).has(3)


@pytest.mark.anyio
async def test_clear_drops_session():
    store = SessionGrantStore(redis_dsn="")
    grants = SessionGrants(session_id="sid-a")
    grants.add(1)
    await store.save(grants)

    await store.clear("sid-a")

    assert (await store.load("sid-a")).list_ids == set()


@pytest.mark.anyio
async def test_redis_store_uses_set_with_ttl():
    store = SessionGrantStore(redis_dsn="redis://localhost:6379/0", ttl_seconds=120)
    mock_redis = AsyncMock()
    mock_redis.smembers = AsyncMock(return_value={"4", "8"})
    store._redis = mock_redis

    grants = await store.load("sid-r")
    assert grants.list_ids == {4, 8}

    grants.add(9)
    await store.save(grants)

    mock_redis.sadd.assert_awaited_once_with("grants:sid-r", 4, 8, 9)
    mock_redis.expire.assert_awaited_once_with("grants:sid-r", 120)


@pytest.mark.anyio
async def test_redis_failure_falls_back_to_memory():
    store = SessionGrantStore(redis_dsn="redis://localhost:6379/0")
    mock_redis = AsyncMock()
    mock_redis.sadd = AsyncMock(side_effect=redis.ConnectionError("down"))
    store._redis = mock_redis

    grants = SessionGrants(session_id="sid-f")
    grants.add(2)
    await store.save(grants)

    # The failed client is dropped and the store is cooling down.
    assert store._redis is None
    assert (await store.load("sid-f")).has(2)


@pytest.mark.anyio
async def test_unreachable_redis_uses_memory():
    store = SessionGrantStore(redis_dsn="redis://nonexistent:6379")
    grants = SessionGrants(session_id="sid-x")
    grants.add(11)
    await store.save(grants)
    assert (await store.load("sid-x")).has(11)
