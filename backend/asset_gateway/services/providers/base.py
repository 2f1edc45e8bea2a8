"""
ImageProvider: 图片生成 provider 抽象基类

所有 provider 适配器继承此基类，链路只面向该接口迭代，不按 provider 身份分支。

子类必须实现:
- name: provider 唯一标识
- credential_name: 凭证名称（通过 SecretSource 读取）
- _generate(): 发起上游调用并归一化结果

基类负责:
- 凭证缺失时在任何网络调用前失败（missing_credentials）
- 把传输异常、解析异常统一转换为 ProviderError
- 归一化 base64 / URL 两种产物形态并拒绝空或不可信的载荷（invalid_response）
"""

from __future__ import annotations

import base64
import binascii
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import httpx

from asset_gateway.core.config import settings
from asset_gateway.core.exceptions import ErrorCode, ProviderError
from asset_gateway.core.http_client import RetryPolicy, create_async_http_client, request_with_retry
from asset_gateway.schemas.asset_generation import GenerationRequest
from asset_gateway.services.secrets.manager import SecretSource

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME = "image/png"
_FORMAT_MIME = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
}


def mime_for_format(fmt: str | None) -> str:
    return _FORMAT_MIME.get((fmt or "").lower(), DEFAULT_IMAGE_MIME)


def classify_status(status_code: int, body: str | None = None) -> ErrorCode:
    """上游 HTTP 状态码 -> 错误分类"""
    text = (body or "").lower()
    if status_code == 401:
        return ErrorCode.MISSING_CREDENTIALS
    if status_code == 403:
        if "verif" in text:
            return ErrorCode.VERIFICATION_REQUIRED
        return ErrorCode.INVALID_REQUEST
    if status_code == 404:
        return ErrorCode.NOT_FOUND
    if status_code == 413:
        return ErrorCode.PAYLOAD_TOO_LARGE
    if status_code == 429:
        return ErrorCode.RATE_LIMITED
    if status_code >= 500:
        return ErrorCode.UPSTREAM_ERROR
    return ErrorCode.INVALID_REQUEST


@dataclass(frozen=True)
class ProviderOutput:
    """归一化后的 provider 产物：asset 为 data URI 或 http(s) URL"""

    asset: str
    provider: str
    metadata: dict[str, Any] = field(default_factory=dict)
    mime_type: str | None = None

    @property
    def is_remote(self) -> bool:
        return self.asset.startswith(("http://", "https://"))


class ImageProvider(ABC):
    name: str
    credential_name: str

    def __init__(
        self,
        secrets: SecretSource,
        *,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.secrets = secrets
        self.retry_policy = retry_policy or self.default_retry_policy()
        self._transport = transport

    @abstractmethod
    def default_retry_policy(self) -> RetryPolicy:
        """provider 专属的调用级超时/重试策略"""

    @abstractmethod
    async def _generate(
        self,
        client: httpx.AsyncClient,
        request: GenerationRequest,
        api_key: str,
    ) -> ProviderOutput:
        """发起上游调用并返回归一化产物"""

    async def invoke(self, request: GenerationRequest) -> ProviderOutput:
        api_key = await self.secrets.get_secret(self.credential_name)
        if not api_key:
            raise self._error(
                ErrorCode.MISSING_CREDENTIALS,
                f"{self.credential_name} is not configured",
            )

        try:
            async with create_async_http_client(transport=self._transport) as client:
                return await self._generate(client, request, api_key)
        except ProviderError:
            raise
        except httpx.TimeoutException as exc:
            raise self._error(
                ErrorCode.UPSTREAM_ERROR,
                f"Request timed out after {self.retry_policy.timeout}s",
            ) from exc
        except httpx.HTTPError as exc:
            raise self._error(
                ErrorCode.UPSTREAM_ERROR,
                f"Transport error: {exc.__class__.__name__}",
            ) from exc
        except (ValueError, KeyError, TypeError, IndexError) as exc:
            raise self._error(
                ErrorCode.INVALID_RESPONSE,
                f"Malformed provider payload: {exc}",
            ) from exc

    # ===== 子类辅助 =====

    def _error(self, code: ErrorCode, message: str, status_code: int | None = None) -> ProviderError:
        return ProviderError(code, message, provider=self.name, status_code=status_code)

    async def _post(self, client: httpx.AsyncClient, url: str, **kwargs: Any) -> httpx.Response:
        response = await request_with_retry(client, "POST", url, self.retry_policy, **kwargs)
        if not response.is_success:
            body = response.text[: settings.UPLOAD_ERROR_BODY_LIMIT]
            code = classify_status(response.status_code, body)
            logger.warning(
                "image_provider_http_error provider=%s status=%d code=%s",
                self.name,
                response.status_code,
                code.value,
            )
            raise self._error(
                code,
                f"{self.name} returned HTTP {response.status_code}: {body}",
                status_code=response.status_code,
            )
        return response

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise self._error(ErrorCode.INVALID_RESPONSE, "Provider returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise self._error(ErrorCode.INVALID_RESPONSE, "Provider returned an unexpected payload")
        return payload

    def _from_base64(
        self,
        data: str | None,
        *,
        mime_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ProviderOutput:
        raw = (data or "").strip()
        if raw.startswith("data:") and "," in raw:
            header, raw = raw.split(",", 1)
            mime_type = mime_type or header[5:].split(";", 1)[0] or None
        if not raw:
            raise self._error(ErrorCode.INVALID_RESPONSE, "Provider returned an empty image")
        try:
            decoded = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise self._error(ErrorCode.INVALID_RESPONSE, "Provider returned invalid base64 data") from exc
        if len(decoded) < settings.ASSET_MIN_BYTES:
            raise self._error(
                ErrorCode.INVALID_RESPONSE,
                f"Provider image is implausibly small ({len(decoded)} bytes)",
            )
        if settings.MAX_RESPONSE_BYTES and len(decoded) > settings.MAX_RESPONSE_BYTES:
            raise self._error(ErrorCode.PAYLOAD_TOO_LARGE, "Provider image exceeds size limit")
        mime = mime_type or DEFAULT_IMAGE_MIME
        meta = dict(metadata or {})
        meta.setdefault("byte_size", len(decoded))
        return ProviderOutput(
            asset=f"data:{mime};base64,{raw}",
            provider=self.name,
            metadata=meta,
            mime_type=mime,
        )

    def _from_url(self, url: str | None, *, metadata: dict[str, Any] | None = None) -> ProviderOutput:
        value = (url or "").strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise self._error(ErrorCode.INVALID_RESPONSE, "Provider returned an invalid image URL")
        return ProviderOutput(asset=value, provider=self.name, metadata=dict(metadata or {}))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name}>"


__all__ = [
    "ImageProvider",
    "ProviderOutput",
    "classify_status",
    "mime_for_format",
]
