"""
单航班（single-flight）请求协调

同一 key 同一时刻最多只有一个执行在进行：
- 无在途执行：启动 work() 并登记为该 key 的在途执行
- 已有在途执行：不再启动新的执行，等待并共享同一结果（成功或异常）
- 执行结束（无论成败）立即注销，之后不重叠的请求可以重新执行（历史结果去重由缓存负责）

work() 以独立 Task 运行，单个调用方被取消不会中断共享执行。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task[Any]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight)

    async def coordinate(self, key: str, work: Callable[[], Awaitable[T]]) -> T:
        # 查找与登记之间没有 await，对同一事件循环内的并发调用方是原子的
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(work())
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            logger.debug("single_flight_joined key=%s", key)
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # 所有调用方都已取消时没有人读取异常，这里标记为已读取
        if not task.cancelled():
            task.exception()


__all__ = ["SingleFlight"]
