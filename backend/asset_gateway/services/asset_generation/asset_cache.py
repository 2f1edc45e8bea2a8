"""
两级资产缓存

- 易失层：进程内，固定 TTL + 容量上限，仅作为延迟优化，从不是唯一事实来源
- 持久层：外部共享存储（默认 Redis），易失层未命中时才访问

读路径：易失层 -> 持久层；持久层命中后回填易失层。
写路径：先写持久层（NX，已有记录不覆盖），只把持久层实际持有的记录写入易失层：
      - 写入成功：写入本次记录
      - 已存在（其他进程先写入）：回读持久层记录并写入该记录
持久层写失败只记日志，不影响本次请求结果，易失层也不写入。
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Literal, Protocol

from pydantic import ValidationError

from asset_gateway.core.cache import CacheService
from asset_gateway.core.cache import cache as default_cache
from asset_gateway.core.cache_keys import CacheKeys
from asset_gateway.core.config import settings
from asset_gateway.schemas.asset_generation import CachedAssetRecord
from asset_gateway.utils.best_effort import best_effort

logger = logging.getLogger(__name__)

CacheTier = Literal["volatile", "durable"]


class DurableAssetStore(Protocol):
    async def get_by_key(self, key: str) -> CachedAssetRecord | None: ...

    async def put_by_key(self, record: CachedAssetRecord) -> bool: ...


class VolatileAssetCache:
    """进程内 TTL 缓存"""

    def __init__(
        self,
        ttl: int | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl if ttl is not None else settings.ASSET_CACHE_VOLATILE_TTL
        self.max_entries = max_entries if max_entries is not None else settings.ASSET_CACHE_VOLATILE_MAX_ENTRIES
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, CachedAssetRecord]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> CachedAssetRecord | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, record = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        self._entries.move_to_end(key)
        return record

    async def set(self, key: str, record: CachedAssetRecord) -> None:
        self._entries[key] = (self._clock() + self.ttl, record)
        self._entries.move_to_end(key)
        while self.max_entries and len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)


class RedisAssetStore:
    """基于 CacheService 的持久层；记录一经写入不再覆盖（NX）"""

    def __init__(self, cache: CacheService | None = None, ttl: int | None = None):
        self.cache = cache or default_cache
        self.ttl = ttl if ttl is not None else settings.ASSET_CACHE_DURABLE_TTL

    async def get_by_key(self, key: str) -> CachedAssetRecord | None:
        payload = await self.cache.get(CacheKeys.asset_record(key))
        if payload is None:
            return None
        try:
            return CachedAssetRecord.model_validate(payload)
        except ValidationError as exc:
            # 无法解析的记录直接清除，按未命中处理，下次生成可重新写入
            logger.warning("asset_cache_durable_record_invalid key=%s err=%s", key, exc)
            await self.cache.delete(CacheKeys.asset_record(key))
            return None

    async def put_by_key(self, record: CachedAssetRecord) -> bool:
        """写入记录；key 已存在时不覆盖并返回 False"""
        data: dict[str, Any] = record.model_dump(mode="json")
        stored = await self.cache.add(CacheKeys.asset_record(record.cache_key), data, ttl=self.ttl)
        if not stored:
            logger.info("asset_cache_durable_record_exists key=%s", record.cache_key)
        return stored


class TwoTierAssetCache:
    def __init__(self, durable: DurableAssetStore, volatile: VolatileAssetCache | None = None):
        self.durable = durable
        self.volatile = volatile or VolatileAssetCache()

    async def lookup(self, key: str) -> tuple[CachedAssetRecord, CacheTier] | None:
        record = await self.volatile.get(key)
        if record is not None:
            return record, "volatile"

        try:
            record = await self.durable.get_by_key(key)
        except Exception as exc:
            # 持久层读失败按未命中处理
            logger.warning("asset_cache_durable_read_failed key=%s err=%s", key, exc)
            return None
        if record is None:
            return None

        await self.volatile.set(key, record)
        return record, "durable"

    async def store(self, record: CachedAssetRecord) -> CachedAssetRecord | None:
        """
        写穿两级缓存，返回持久层实际持有的记录。

        持久层写失败返回 None；key 已被其他进程写入时返回那条记录，本次记录被丢弃。
        """
        durable_record = await best_effort(
            f"asset_cache_durable_write key={record.cache_key}",
            self._persist,
            record,
        )
        if durable_record is None:
            return None

        await self.volatile.set(record.cache_key, durable_record)
        return durable_record

    async def _persist(self, record: CachedAssetRecord) -> CachedAssetRecord | None:
        if await self.durable.put_by_key(record):
            return record
        return await self.durable.get_by_key(record.cache_key)


__all__ = [
    "CacheTier",
    "DurableAssetStore",
    "RedisAssetStore",
    "TwoTierAssetCache",
    "VolatileAssetCache",
]
