"""缓存 Key 注册表实现。

禁止在业务代码中硬编码 Redis Key，统一从此处生成，便于失效管理。
"""

from __future__ import annotations


class CacheKeys:
    prefix = "ag"

    # ===== Generated Asset =====
    @classmethod
    def asset_record(cls, cache_key: str) -> str:
        """已生成资产记录的持久层缓存 key（按内容哈希或幂等键）。"""
        return f"{cls.prefix}:asset:{cache_key}"
