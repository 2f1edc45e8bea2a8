"""
资产生成错误分类

- provider / 上传层的异常在适配器边界统一转换为 AssetGenerationError
- 只有终态错误（validation_error / providers_exhausted / upload_failed / missing_credentials）会抛给调用方
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from asset_gateway.schemas.asset_generation import ProviderAttempt


class ErrorCode(str, Enum):
    """错误分类"""

    VALIDATION_ERROR = "validation_error"
    MISSING_CREDENTIALS = "missing_credentials"
    VERIFICATION_REQUIRED = "verification_required"
    INVALID_REQUEST = "invalid_request"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_ERROR = "upstream_error"
    INVALID_RESPONSE = "invalid_response"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    NOT_FOUND = "not_found"
    PROVIDERS_EXHAUSTED = "providers_exhausted"
    UPLOAD_FAILED = "upload_failed"


class AssetGenerationError(Exception):
    """资产生成异常基类"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.provider = provider
        self.details = details or {}
        super().__init__(f"{code.value}: {message}")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "error": self.code.value,
            "message": self.message,
        }
        if self.provider:
            payload["provider"] = self.provider
        if self.details:
            payload["details"] = self.details
        return payload


class AssetValidationError(AssetGenerationError):
    """请求参数非法，不会触达缓存与上游"""

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(
            ErrorCode.VALIDATION_ERROR,
            message,
            details={"field": field} if field else None,
        )


class ProviderError(AssetGenerationError):
    """单个 provider 调用失败

    链路层面一律不可重试：provider 自身的调用级重试已在传输层完成，链路只会前进到下一个 provider。
    """

    retryable = False

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
    ):
        details = {"status_code": status_code} if status_code is not None else None
        super().__init__(code, message, provider=provider, details=details)
        self.status_code = status_code


class ProvidersExhaustedError(AssetGenerationError):
    """链上所有 provider 均失败"""

    def __init__(self, attempts: list["ProviderAttempt"]):
        self.attempts = list(attempts)
        tried = ", ".join(a.provider for a in self.attempts) or "none"
        super().__init__(
            ErrorCode.PROVIDERS_EXHAUSTED,
            f"All image providers failed (tried: {tried})",
            details={"attempts": [a.model_dump() for a in self.attempts]},
        )


class UploadError(AssetGenerationError):
    """资产存储上传失败（存储本身没有备用方案，属于终态错误）"""

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.UPLOAD_FAILED,
        status_code: int | None = None,
        body: str | None = None,
    ):
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if body:
            details["body"] = body
        super().__init__(code, message, details=details)
        self.status_code = status_code
        self.body = body


__all__ = [
    "AssetGenerationError",
    "AssetValidationError",
    "ErrorCode",
    "ProviderError",
    "ProvidersExhaustedError",
    "UploadError",
]
