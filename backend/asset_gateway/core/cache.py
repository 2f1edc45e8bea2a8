import pickle
from typing import Any

from redis.asyncio import Redis, from_url

from asset_gateway.core.config import settings
from asset_gateway.core.logging import logger


class CacheService:
    """
    Redis 缓存服务
    """
    def __init__(self):
        self._redis: Redis | None = None

    def init(self) -> None:
        """初始化 Redis 连接池"""
        if settings.REDIS_URL:
            self._redis = from_url(
                settings.REDIS_URL,
                encoding=settings.REDIS_ENCODING,
                decode_responses=False  # 手动处理序列化，支持对象缓存
            )
            logger.info(f"Redis initialized at {settings.REDIS_URL}")
        else:
            logger.warning("REDIS_URL not set, cache will be disabled")

    async def close(self) -> None:
        """关闭 Redis 连接"""
        if self._redis:
            await self._redis.close()
            self._redis = None
            logger.info("Redis connection closed")

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    @property
    def redis(self) -> Redis:
        if not self._redis:
            raise RuntimeError("CacheService not initialized. Call init() first.")
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{settings.CACHE_PREFIX}{key}"

    async def get(self, key: str) -> Any | None:
        """获取缓存值 (自动反序列化)"""
        if not self._redis: return None
        try:
            data = await self._redis.get(self._make_key(key))
            if data:
                return pickle.loads(data)
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}")
        return None

    async def add(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """仅在 key 不存在时写入；已存在返回 False。

        与 get 不同，连接/序列化失败会直接抛出，由调用方决定是否降级。
        """
        data = pickle.dumps(value)
        return bool(await self.redis.set(self._make_key(key), data, ex=ttl, nx=True))

    async def delete(self, key: str) -> bool:
        """删除缓存"""
        if not self._redis: return False
        try:
            await self._redis.delete(self._make_key(key))
            return True
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            return False


# 单例实例
cache = CacheService()
