"""
Provider 故障转移链

按配置顺序逐个尝试 provider（串行，不并发）：
- 成功：立即停止并返回产物
- 任何错误分类在链路层都不可重试：记录尝试后前进到下一个 provider
- 全部失败：抛出 providers_exhausted，携带完整尝试日志
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from asset_gateway.core.exceptions import ErrorCode, ProviderError, ProvidersExhaustedError
from asset_gateway.schemas.asset_generation import GenerationRequest, ProviderAttempt
from asset_gateway.services.providers.base import ImageProvider, ProviderOutput

logger = logging.getLogger(__name__)

AttemptCallback = Callable[[ProviderAttempt], Awaitable[None]]


class ProviderChain:
    def __init__(self, providers: Sequence[ImageProvider]):
        if not providers:
            raise ValueError("provider chain requires at least one provider")
        self.providers = list(providers)

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.providers]

    async def run(
        self,
        request: GenerationRequest,
        on_attempt: AttemptCallback | None = None,
    ) -> tuple[ProviderOutput, list[ProviderAttempt]]:
        attempts: list[ProviderAttempt] = []

        for provider in self.providers:
            start = time.perf_counter()
            try:
                output = await provider.invoke(request)
            except ProviderError as exc:
                attempt = ProviderAttempt(
                    provider=provider.name,
                    success=False,
                    error_code=exc.code.value,
                    error_message=exc.message,
                    retryable_at_chain_level=exc.retryable,
                    duration_ms=(time.perf_counter() - start) * 1000,
                )
            except Exception as exc:
                # 适配器未归类的异常同样视为该 provider 失败，不中断链路
                logger.exception(
                    "image_provider_unexpected_error request_id=%s provider=%s",
                    request.request_id,
                    provider.name,
                )
                attempt = ProviderAttempt(
                    provider=provider.name,
                    success=False,
                    error_code=ErrorCode.UPSTREAM_ERROR.value,
                    error_message=f"{exc.__class__.__name__}: {exc}",
                    duration_ms=(time.perf_counter() - start) * 1000,
                )
            else:
                attempt = ProviderAttempt(
                    provider=provider.name,
                    success=True,
                    duration_ms=(time.perf_counter() - start) * 1000,
                )
                attempts.append(attempt)
                logger.info(
                    "image_provider_succeeded request_id=%s provider=%s latency_ms=%.2f",
                    request.request_id,
                    provider.name,
                    attempt.duration_ms,
                )
                if on_attempt:
                    await on_attempt(attempt)
                return output, attempts

            attempts.append(attempt)
            logger.warning(
                "image_provider_failed request_id=%s provider=%s code=%s message=%s",
                request.request_id,
                provider.name,
                attempt.error_code,
                attempt.error_message,
            )
            if on_attempt:
                await on_attempt(attempt)

        raise ProvidersExhaustedError(attempts)


__all__ = ["AttemptCallback", "ProviderChain"]
