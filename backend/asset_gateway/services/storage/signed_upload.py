"""
签名上传协议

流程：
    1. 组装规范参数集（timestamp 必填，public_id / folder / format / overwrite 可选）
    2. 参数按 key 排序，以 key=value 用 '&' 拼接
    3. 规范串拼接共享密钥后做哈希，得到 signature
    4. 请求携带参数 + signature + api_key（公开标识），共享密钥本身从不发送

public_id 冲突是预期行为（overwrite），同一逻辑资产的重试上传会收敛到同一对象而不是产生副本。
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from asset_gateway.core.config import settings
from asset_gateway.core.exceptions import ErrorCode, UploadError
from asset_gateway.core.http_client import RetryPolicy, create_async_http_client, request_with_retry
from asset_gateway.schemas.asset_generation import UploadResult
from asset_gateway.services.secrets.manager import SecretSource

logger = logging.getLogger(__name__)

# 不参与签名的参数
SIGNATURE_EXCLUDED_PARAMS = frozenset({"file", "api_key", "resource_type", "cloud_name", "signature"})
SUPPORTED_SIGNATURE_ALGORITHMS = ("sha1", "sha256")


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def canonicalize_params(params: Mapping[str, Any]) -> str:
    """按 key 排序后拼接为 key=value&key=value，空值与排除字段不参与签名"""
    items = sorted(
        (key, _stringify(value))
        for key, value in params.items()
        if key not in SIGNATURE_EXCLUDED_PARAMS and value is not None and value != ""
    )
    return "&".join(f"{key}={value}" for key, value in items)


def sign_params(params: Mapping[str, Any], api_secret: str, algorithm: str | None = None) -> str:
    algo = (algorithm or settings.ASSET_STORE_SIGNATURE_ALGORITHM or "sha1").lower()
    if algo not in SUPPORTED_SIGNATURE_ALGORITHMS:
        raise ValueError(f"unsupported signature algorithm: {algo}")
    if not api_secret:
        raise ValueError("api_secret must not be empty")
    payload = f"{canonicalize_params(params)}{api_secret}"
    return hashlib.new(algo, payload.encode("utf-8")).hexdigest()


def truncate_body(text: str | None, limit: int | None = None) -> str:
    max_len = limit if limit is not None else settings.UPLOAD_ERROR_BODY_LIMIT
    body = text or ""
    if len(body) <= max_len:
        return body
    return body[:max_len] + "..."


@dataclass(frozen=True)
class StoreCredentials:
    cloud_name: str
    api_key: str
    api_secret: str


class SignedUploader:
    """资产存储签名上传客户端"""

    def __init__(
        self,
        secrets: SecretSource,
        *,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.secrets = secrets
        self.retry_policy = retry_policy or RetryPolicy(
            timeout=settings.ASSET_STORE_UPLOAD_TIMEOUT,
            max_retries=settings.ASSET_STORE_UPLOAD_MAX_RETRIES,
            retry_delay=settings.PROVIDER_RETRY_DELAY,
            retry_backoff=settings.PROVIDER_RETRY_BACKOFF,
        )
        self._transport = transport
        self._clock = clock

    async def load_credentials(self) -> StoreCredentials:
        """每次上传都重新读取凭证，支持在线轮换"""
        cloud_name = await self.secrets.get_secret(settings.ASSET_STORE_CLOUD_NAME_KEY)
        api_key = await self.secrets.get_secret(settings.ASSET_STORE_API_KEY_NAME)
        api_secret = await self.secrets.get_secret(settings.ASSET_STORE_API_SECRET_NAME)
        missing = [
            name
            for name, value in (
                (settings.ASSET_STORE_CLOUD_NAME_KEY, cloud_name),
                (settings.ASSET_STORE_API_KEY_NAME, api_key),
                (settings.ASSET_STORE_API_SECRET_NAME, api_secret),
            )
            if not value
        ]
        if missing:
            raise UploadError(
                f"Asset store credentials not configured: {', '.join(missing)}",
                code=ErrorCode.MISSING_CREDENTIALS,
            )
        return StoreCredentials(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret)  # type: ignore[arg-type]

    def build_upload_params(
        self,
        *,
        public_id: str | None = None,
        folder: str | None = None,
        format: str | None = None,
        overwrite: bool = True,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"timestamp": int(self._clock())}
        if public_id:
            params["public_id"] = public_id
            params["overwrite"] = overwrite
        if folder:
            params["folder"] = folder.strip("/")
        if format:
            params["format"] = format
        return params

    async def upload(
        self,
        asset: str | bytes,
        *,
        public_id: str | None = None,
        folder: str | None = None,
        format: str | None = None,
        resource_type: str = "image",
    ) -> UploadResult:
        """
        上传资产（data URI / 远程 URL / 原始字节）。

        Raises:
            UploadError: 401 -> missing_credentials；其他非成功响应或传输异常 -> upload_failed
        """
        if not asset:
            raise UploadError("empty asset payload")

        credentials = await self.load_credentials()
        params = self.build_upload_params(public_id=public_id, folder=folder, format=format)
        signature = sign_params(params, credentials.api_secret)

        form = {key: _stringify(value) for key, value in params.items()}
        form["api_key"] = credentials.api_key
        form["signature"] = signature

        files = None
        if isinstance(asset, bytes):
            files = {"file": ("asset", asset, "application/octet-stream")}
        else:
            form["file"] = asset

        url = settings.ASSET_STORE_UPLOAD_URL.format(
            cloud_name=credentials.cloud_name,
            resource_type=resource_type or "image",
        )

        try:
            async with create_async_http_client(transport=self._transport) as client:
                response = await request_with_retry(
                    client,
                    "POST",
                    url,
                    self.retry_policy,
                    data=form,
                    files=files,
                )
        except httpx.HTTPError as exc:
            logger.warning("asset_upload_transport_error public_id=%s err=%s", public_id, exc)
            raise UploadError(f"Upload request failed: {exc.__class__.__name__}") from exc

        if response.status_code == 401:
            raise UploadError(
                "Asset store rejected credentials",
                code=ErrorCode.MISSING_CREDENTIALS,
                status_code=401,
                body=truncate_body(response.text),
            )
        if not response.is_success:
            raise UploadError(
                f"Upload failed with status {response.status_code}",
                status_code=response.status_code,
                body=truncate_body(response.text),
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UploadError(
                "Asset store returned a non-JSON body",
                status_code=response.status_code,
                body=truncate_body(response.text),
            ) from exc

        asset_id = payload.get("public_id") if isinstance(payload, dict) else None
        secure_url = payload.get("secure_url") if isinstance(payload, dict) else None
        if not asset_id or not secure_url:
            raise UploadError(
                "Asset store response missing public_id/secure_url",
                status_code=response.status_code,
                body=truncate_body(response.text),
            )

        result = UploadResult(
            asset_id=asset_id,
            secure_url=secure_url,
            format=payload.get("format") or format,
            byte_size=payload.get("bytes"),
            width=payload.get("width"),
            height=payload.get("height"),
            resource_type=payload.get("resource_type") or resource_type,
        )
        logger.info(
            "asset_upload_completed asset_id=%s bytes=%s",
            result.asset_id,
            result.byte_size,
        )
        return result


__all__ = [
    "SIGNATURE_EXCLUDED_PARAMS",
    "SignedUploader",
    "StoreCredentials",
    "canonicalize_params",
    "sign_params",
    "truncate_body",
]
