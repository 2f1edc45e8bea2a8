from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """单次上游调用的超时与重试策略"""

    timeout: float = 30.0  # 超时秒数
    max_retries: int = 0  # 最大重试次数（不含首次调用）
    retry_delay: float = 1.0  # 重试间隔秒数
    retry_backoff: float = 2.0  # 重试退避倍数
    retry_statuses: frozenset[int] = field(default=DEFAULT_RETRY_STATUSES)

    def delay_for(self, attempt: int) -> float:
        """第 attempt 次重试前的等待时间（attempt 从 1 开始）"""
        return self.retry_delay * (self.retry_backoff ** (attempt - 1))


def create_async_http_client(
    *,
    timeout: float | httpx.Timeout | None = None,
    http2: bool = True,
    transport: httpx.AsyncBaseTransport | None = None,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    """
    创建 httpx.AsyncClient。

    - transport 可注入（测试中使用 httpx.MockTransport）。
    - 其余参数原样透传给 httpx.AsyncClient。
    """
    return httpx.AsyncClient(
        timeout=timeout,
        http2=http2,
        transport=transport,
        **client_kwargs,
    )


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    policy: RetryPolicy,
    **kwargs: Any,
) -> httpx.Response:
    """
    按 RetryPolicy 发起请求。

    - 超时/网络错误：未超过 max_retries 时退避重试，否则原样抛出
    - 可重试状态码（429/5xx）：未超过 max_retries 时退避重试，否则返回最后一次响应
    - 其他响应直接返回，由调用方判定成功与否
    """
    attempt = 0
    while True:
        try:
            response = await client.request(method, url, timeout=policy.timeout, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            attempt += 1
            if attempt > policy.max_retries:
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "upstream_request_retry url=%s attempt=%d delay=%.2f err=%s",
                url,
                attempt,
                delay,
                exc.__class__.__name__,
            )
            await asyncio.sleep(delay)
            continue

        if response.status_code in policy.retry_statuses and attempt < policy.max_retries:
            attempt += 1
            delay = policy.delay_for(attempt)
            logger.warning(
                "upstream_request_retry url=%s attempt=%d delay=%.2f status=%d",
                url,
                attempt,
                delay,
                response.status_code,
            )
            await response.aclose()
            await asyncio.sleep(delay)
            continue

        return response


__all__ = [
    "DEFAULT_RETRY_STATUSES",
    "RetryPolicy",
    "create_async_http_client",
    "request_with_retry",
]
