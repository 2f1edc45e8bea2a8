from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def best_effort(
    label: str,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    default: T | None = None,
    **kwargs: Any,
) -> T | None:
    """
    尽力而为地执行异步调用：失败只记录日志并返回 default，绝不向上抛出。

    用于缓存写入、事件上报等不应影响主流程结果的副作用。
    """
    try:
        return await func(*args, **kwargs)
    except Exception as exc:
        logger.warning("best_effort_failed op=%s err=%s: %s", label, exc.__class__.__name__, exc)
        return default


__all__ = ["best_effort"]
