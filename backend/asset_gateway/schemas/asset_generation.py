from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import Field

from asset_gateway.schemas.base import BaseSchema


class GenerationRequest(BaseSchema):
    prompt: str = Field(..., description="提示词")
    style: str | None = Field(None, description="风格指令，附加到提示词")
    size: str = Field(..., description="输出尺寸，如 1024x1024")
    format: str = Field(..., description="输出格式 png/jpg/webp")
    folder: str = Field(..., description="资产存储目录")
    explicit_asset_id: str | None = Field(None, description="调用方指定的资产 ID")
    idempotency_key: str | None = Field(None, description="幂等键，覆盖内容哈希")
    use_cache: bool = Field(True, description="是否读写缓存")
    request_id: str = Field(..., description="追踪用请求 ID，与缓存 key 无关")

    @property
    def styled_prompt(self) -> str:
        if self.style:
            return f"{self.prompt}. Style: {self.style}"
        return self.prompt


class ProviderAttempt(BaseSchema):
    provider: str
    success: bool
    error_code: str | None = None
    error_message: str | None = None
    retryable_at_chain_level: bool = False
    duration_ms: float = 0.0


class UploadResult(BaseSchema):
    asset_id: str
    secure_url: str
    format: str | None = None
    byte_size: int | None = None
    width: int | None = None
    height: int | None = None
    resource_type: str | None = None


class CachedAssetRecord(BaseSchema):
    cache_key: str
    prompt: str
    style: str | None = None
    size: str
    format: str
    asset_id: str
    secure_url: str
    provider: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class GenerationResult(BaseSchema):
    success: bool = True
    prompt: str
    style: str | None = None
    size: str
    format: str
    secure_url: str
    asset_id: str
    provider: str
    provider_metadata: dict[str, Any] | None = None
    cached: bool = False
    cache_key: str
    duration_ms: float = 0.0
    request_id: str | None = None


__all__ = [
    "CachedAssetRecord",
    "GenerationRequest",
    "GenerationResult",
    "ProviderAttempt",
    "UploadResult",
]
