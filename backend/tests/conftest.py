"""
测试全局配置

- 默认禁用真实 Redis 连接，统一使用内存 DummyRedis，避免本地未启动 Redis 导致阻塞
- 上游重试间隔清零，避免重试类用例真实等待
- 该文件在 backend/tests 下的所有测试生效
"""
from __future__ import annotations

import os
from typing import Any

import pytest

from asset_gateway.core.cache import cache
from asset_gateway.core.config import settings
from asset_gateway.services.secrets.manager import StaticSecretSource

# 确保测试环境不读取外部 Redis
os.environ.setdefault("REDIS_URL", "")
settings.REDIS_URL = ""

# 1x1 PNG 的字节数低于有效图片阈值，这里用足够长的伪图片载荷
FAKE_IMAGE_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 256


class DummyRedis:
    """
    轻量内存 Redis 替身，覆盖 CacheService 用到的方法：
    - get/set(ex, nx)/delete/keys/exists/flushall
    - fail_writes=True 时 set 抛出 ConnectionError，用于模拟持久层写失败
    """

    def __init__(self):
        self.store: dict[str, Any] = {}
        self.ttls: dict[str, Any] = {}
        self.fail_writes = False
        self.fail_reads = False

    async def get(self, key: str):
        if self.fail_reads:
            raise ConnectionError("redis unavailable")
        return self.store.get(key)

    async def set(self, key: str, value, ex=None, nx: bool | None = None):
        if self.fail_writes:
            raise ConnectionError("redis unavailable")
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for k in keys:
            removed += 1 if self.store.pop(k, None) is not None else 0
            self.ttls.pop(k, None)
        return removed

    async def keys(self, pattern: str):
        if pattern.endswith("*"):
            prefix = pattern[:-1]
            return [k for k in self.store if k.startswith(prefix)]
        return [k for k in self.store if k == pattern]

    async def exists(self, *keys):
        return sum(1 for k in keys if k in self.store)

    async def flushall(self):
        self.store.clear()
        self.ttls.clear()

    async def close(self):
        return None


@pytest.fixture(autouse=True)
def dummy_redis(monkeypatch):
    redis = DummyRedis()
    monkeypatch.setattr(cache, "_redis", redis)
    monkeypatch.setattr(settings, "PROVIDER_RETRY_DELAY", 0.0)
    yield redis


@pytest.fixture
def store_secrets() -> dict[str, str]:
    return {
        settings.ASSET_STORE_CLOUD_NAME_KEY: "demo-cloud",
        settings.ASSET_STORE_API_KEY_NAME: "public-key-123",
        settings.ASSET_STORE_API_SECRET_NAME: "super-secret",
    }


@pytest.fixture
def secrets(store_secrets) -> StaticSecretSource:
    return StaticSecretSource(
        {
            **store_secrets,
            settings.OPENAI_API_KEY_NAME: "sk-openai",
            settings.GEMINI_API_KEY_NAME: "gemini-key",
            settings.STABILITY_API_KEY_NAME: "sk-stability",
        }
    )
