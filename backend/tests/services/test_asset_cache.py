import pickle
from unittest.mock import AsyncMock

import pytest

from asset_gateway.core.cache import cache
from asset_gateway.core.cache_keys import CacheKeys
from asset_gateway.schemas.asset_generation import CachedAssetRecord
from asset_gateway.services.asset_generation.asset_cache import (
    RedisAssetStore,
    TwoTierAssetCache,
    VolatileAssetCache,
)


def _record(key: str = "key-1", asset_id: str = "generated/red-bicycle-abc123") -> CachedAssetRecord:
    return CachedAssetRecord(
        cache_key=key,
        prompt="a red bicycle",
        size="512x512",
        format="png",
        asset_id=asset_id,
        secure_url=f"https://res.cloudinary.com/demo-cloud/image/upload/{asset_id}.png",
        provider="openai",
        metadata={"model": "gpt-image-1"},
    )


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_volatile_cache_expires_entries():
    clock = FakeClock()
    volatile = VolatileAssetCache(ttl=10, max_entries=10, clock=clock)
    await volatile.set("k", _record("k"))

    assert await volatile.get("k") is not None
    clock.now += 11
    assert await volatile.get("k") is None
    assert len(volatile) == 0


@pytest.mark.asyncio
async def test_volatile_cache_evicts_least_recently_used():
    volatile = VolatileAssetCache(ttl=60, max_entries=2)
    await volatile.set("a", _record("a"))
    await volatile.set("b", _record("b"))
    await volatile.get("a")
    await volatile.set("c", _record("c"))

    assert await volatile.get("a") is not None
    assert await volatile.get("b") is None
    assert await volatile.get("c") is not None


@pytest.mark.asyncio
async def test_redis_store_roundtrip_and_never_overwrites(dummy_redis):
    store = RedisAssetStore()
    first = _record(asset_id="first")
    second = _record(asset_id="second")

    await store.put_by_key(first)
    await store.put_by_key(second)
    loaded = await store.get_by_key("key-1")

    assert loaded is not None
    assert loaded.asset_id == "first"
    assert cache._make_key(CacheKeys.asset_record("key-1")) in dummy_redis.store


@pytest.mark.asyncio
async def test_redis_store_drops_corrupt_payload(dummy_redis):
    raw_key = cache._make_key(CacheKeys.asset_record("key-1"))
    dummy_redis.store[raw_key] = pickle.dumps({"unexpected": True})
    store = RedisAssetStore()

    assert await store.get_by_key("key-1") is None
    assert raw_key not in dummy_redis.store
    # 清除后可以重新写入
    assert await store.put_by_key(_record()) is True


@pytest.mark.asyncio
async def test_durable_hit_backfills_volatile_tier():
    durable = RedisAssetStore()
    await durable.put_by_key(_record())
    two_tier = TwoTierAssetCache(durable)

    first = await two_tier.lookup("key-1")
    assert first is not None
    assert first[1] == "durable"

    second = await two_tier.lookup("key-1")
    assert second is not None
    assert second[1] == "volatile"
    assert second[0].asset_id == first[0].asset_id


@pytest.mark.asyncio
async def test_durable_read_failure_is_a_miss(dummy_redis):
    durable = AsyncMock()
    durable.get_by_key = AsyncMock(side_effect=ConnectionError("down"))
    two_tier = TwoTierAssetCache(durable)

    assert await two_tier.lookup("key-1") is None


@pytest.mark.asyncio
async def test_store_writes_durable_then_volatile():
    two_tier = TwoTierAssetCache(RedisAssetStore())
    record = _record()

    assert await two_tier.store(record) == record
    assert await two_tier.volatile.get("key-1") == record
    assert await RedisAssetStore().get_by_key("key-1") is not None


@pytest.mark.asyncio
async def test_store_failure_is_swallowed_and_skips_volatile(dummy_redis):
    dummy_redis.fail_writes = True
    two_tier = TwoTierAssetCache(RedisAssetStore())

    assert await two_tier.store(_record()) is None
    assert await two_tier.volatile.get("key-1") is None


@pytest.mark.asyncio
async def test_store_promotes_existing_durable_record():
    # 其他进程已先写入同一 key
    assert await RedisAssetStore().put_by_key(_record(asset_id="generated/other-process")) is True
    two_tier = TwoTierAssetCache(RedisAssetStore())

    stored = await two_tier.store(_record(asset_id="generated/local"))

    assert stored is not None
    assert stored.asset_id == "generated/other-process"
    cached = await two_tier.volatile.get("key-1")
    assert cached is not None
    assert cached.asset_id == "generated/other-process"
    hit = await two_tier.lookup("key-1")
    assert hit is not None
    assert hit[0].asset_id == "generated/other-process"


@pytest.mark.asyncio
async def test_put_by_key_reports_existing_record():
    store = RedisAssetStore()

    assert await store.put_by_key(_record(asset_id="first")) is True
    assert await store.put_by_key(_record(asset_id="second")) is False
