from __future__ import annotations

import hashlib

_NONE_MARKER = "~"


def _encode_field(value: str | None) -> str:
    # 长度前缀，字段内容中出现分隔符也不会产生歧义；None 与空串区分编码
    if value is None:
        return _NONE_MARKER
    return f"{len(value)}:{value}"


def build_cache_key(prompt: str, style: str | None, size: str, format: str) -> str:
    """对 (prompt, style, size, format) 做内容哈希，得到稳定的缓存 key"""
    canonical = "|".join(_encode_field(v) for v in (prompt, style, size, format))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def resolve_cache_key(
    prompt: str,
    style: str | None,
    size: str,
    format: str,
    idempotency_key: str | None = None,
) -> str:
    """调用方提供幂等键时原样使用，完全覆盖内容哈希"""
    if idempotency_key:
        return idempotency_key
    return build_cache_key(prompt, style, size, format)


__all__ = ["build_cache_key", "resolve_cache_key"]
