"""
凭证读取

设计目标：
- provider / 资产存储的凭证统一按名称读取（如 OPENAI_API_KEY），不在配置对象中保存明文。
- 每次流水线执行都重新读取，不跨请求缓存，保证轮换后立即生效。
- 读取失败或未配置返回 None，由调用方转换为 missing_credentials。
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class SecretSource(Protocol):
    async def get_secret(self, name: str) -> str | None: ...


class EnvSecretSource:
    """从环境变量读取凭证"""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ

    async def get_secret(self, name: str) -> str | None:
        if not name:
            return None
        environ = self._environ if self._environ is not None else os.environ
        value = (environ.get(name) or "").strip()
        if not value:
            logger.debug("secret_not_configured name=%s", name)
            return None
        return value


class StaticSecretSource:
    """内存凭证表（嵌入式调用或测试注入）"""

    def __init__(self, secrets: Mapping[str, str | None] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def set(self, name: str, value: str | None) -> None:
        self._secrets[name] = value

    async def get_secret(self, name: str) -> str | None:
        value = (self._secrets.get(name) or "").strip()
        return value or None


__all__ = ["EnvSecretSource", "SecretSource", "StaticSecretSource"]
