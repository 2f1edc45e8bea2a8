from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Any
from urllib.parse import urlparse

import httpx

from asset_gateway.core.cache import cache
from asset_gateway.core.config import settings
from asset_gateway.core.exceptions import (
    AssetGenerationError,
    AssetValidationError,
    ErrorCode,
    UploadError,
)
from asset_gateway.core.logging import setup_logging
from asset_gateway.schemas.asset_generation import (
    CachedAssetRecord,
    GenerationRequest,
    GenerationResult,
    ProviderAttempt,
)
from asset_gateway.services.asset_generation.asset_cache import (
    DurableAssetStore,
    RedisAssetStore,
    TwoTierAssetCache,
)
from asset_gateway.services.asset_generation.cache_key import resolve_cache_key
from asset_gateway.services.asset_generation.coordinator import SingleFlight
from asset_gateway.services.asset_generation.events import EventEmitter, EventSink, PipelinePhase
from asset_gateway.services.providers import ProviderChain, build_provider_chain
from asset_gateway.services.secrets.manager import EnvSecretSource, SecretSource
from asset_gateway.services.storage.delivery import build_delivery_url
from asset_gateway.services.storage.public_id import derive_public_id, validate_public_id
from asset_gateway.services.storage.signed_upload import SignedUploader

logger = logging.getLogger(__name__)

_SIZE_RE = re.compile(r"^(auto|\d{2,5}x\d{2,5})$")
_FORMAT_RE = re.compile(r"^[a-z0-9]{2,5}$")
_MEDIA_SCHEMES = ("http", "https", "data")


def _elapsed_ms(started: float) -> float:
    return max(0.0, (time.perf_counter() - started) * 1000)


class AssetGenerationService:
    """
    图片资产生成编排

    generate() 流程：
        1. 校验请求（prompt 非空等），失败直接抛出 validation_error，不触达缓存与上游
        2. 计算缓存 key（内容哈希或幂等键）
        3. 以缓存 key 做单航班协调，以下步骤同一 key 同时只执行一次：
           易失层 -> 持久层缓存查找 -> provider 链 -> 签名上传 -> 写穿缓存
        4. 每个阶段上报一条生命周期事件（失败不影响流水线）
        5. provider 全部失败时抛出 providers_exhausted，不伪造任何结果
    """

    def __init__(
        self,
        *,
        chain: ProviderChain,
        uploader: SignedUploader,
        asset_cache: TwoTierAssetCache,
        coordinator: SingleFlight | None = None,
        events: EventEmitter | None = None,
    ):
        self.chain = chain
        self.uploader = uploader
        self.asset_cache = asset_cache
        self.coordinator = coordinator or SingleFlight()
        self.events = events or EventEmitter()

    async def generate(
        self,
        prompt: str,
        *,
        style: str | None = None,
        size: str | None = None,
        format: str | None = None,
        folder: str | None = None,
        target_id: str | None = None,
        use_cache: bool = True,
        idempotency_key: str | None = None,
    ) -> GenerationResult:
        started = time.perf_counter()
        request = self.build_request(
            prompt,
            style=style,
            size=size,
            format=format,
            folder=folder,
            target_id=target_id,
            use_cache=use_cache,
            idempotency_key=idempotency_key,
        )
        cache_key = resolve_cache_key(
            request.prompt,
            request.style,
            request.size,
            request.format,
            request.idempotency_key,
        )

        await self.events.emit(
            request.request_id,
            PipelinePhase.START,
            cache_key=cache_key,
            use_cache=request.use_cache,
        )

        try:
            result = await self.coordinator.coordinate(
                cache_key,
                lambda: self._run(request, cache_key, started),
            )
        except AssetGenerationError as exc:
            await self.events.emit(
                request.request_id,
                PipelinePhase.FAILED,
                success=False,
                duration_ms=_elapsed_ms(started),
                error=exc.code.value,
                message=exc.message,
            )
            raise

        if result.request_id != request.request_id:
            # 合并到他人在途执行的调用方拿到同一结果，仅替换追踪 ID
            result = result.model_copy(update={"request_id": request.request_id})
        return result

    def build_request(
        self,
        prompt: str,
        *,
        style: str | None = None,
        size: str | None = None,
        format: str | None = None,
        folder: str | None = None,
        target_id: str | None = None,
        use_cache: bool = True,
        idempotency_key: str | None = None,
    ) -> GenerationRequest:
        # 缓存 key 基于规范化后的字段：prompt/style 去首尾空白（保留大小写），size/format 小写
        text = prompt.strip() if isinstance(prompt, str) else ""
        if not text:
            raise AssetValidationError("prompt must be a non-empty string", field="prompt")

        size_value = (size or settings.ASSET_DEFAULT_SIZE).strip().lower()
        if not _SIZE_RE.match(size_value):
            raise AssetValidationError(f"invalid size: {size!r} (expected WIDTHxHEIGHT)", field="size")

        format_value = (format or settings.ASSET_DEFAULT_FORMAT).strip().lower().lstrip(".")
        if not _FORMAT_RE.match(format_value):
            raise AssetValidationError(f"invalid format: {format!r}", field="format")

        explicit_id = validate_public_id(target_id) if target_id else None

        return GenerationRequest(
            prompt=text,
            style=(style or "").strip() or None,
            size=size_value,
            format=format_value,
            folder=(folder or settings.ASSET_DEFAULT_FOLDER).strip("/ "),
            explicit_asset_id=explicit_id,
            idempotency_key=idempotency_key or None,
            use_cache=use_cache,
            request_id=uuid.uuid4().hex,
        )

    async def _run(self, request: GenerationRequest, cache_key: str, started: float) -> GenerationResult:
        if request.use_cache:
            hit = await self.asset_cache.lookup(cache_key)
            if hit is not None:
                record, tier = hit
                return await self._serve_cached(request, record, tier, cache_key, started)

        output, attempts = await self.chain.run(request, on_attempt=lambda a: self._on_attempt(request, a))

        public_id = request.explicit_asset_id or derive_public_id(request.prompt, request.style)
        upload_started = time.perf_counter()
        try:
            upload = await self.uploader.upload(
                output.asset,
                public_id=public_id,
                folder=request.folder,
                format=request.format,
            )
        except UploadError as exc:
            await self.events.emit(
                request.request_id,
                PipelinePhase.UPLOAD,
                success=False,
                provider=output.provider,
                duration_ms=_elapsed_ms(upload_started),
                error=exc.code.value,
                status_code=exc.status_code,
            )
            raise

        await self.events.emit(
            request.request_id,
            PipelinePhase.UPLOAD,
            provider=output.provider,
            duration_ms=_elapsed_ms(upload_started),
            asset_id=upload.asset_id,
            byte_size=upload.byte_size,
        )

        result = GenerationResult(
            success=True,
            prompt=request.prompt,
            style=request.style,
            size=request.size,
            format=request.format,
            secure_url=upload.secure_url,
            asset_id=upload.asset_id,
            provider=output.provider,
            provider_metadata=output.metadata or None,
            cached=False,
            cache_key=cache_key,
            duration_ms=_elapsed_ms(started),
            request_id=request.request_id,
        )

        if request.use_cache:
            await self.asset_cache.store(
                CachedAssetRecord(
                    cache_key=cache_key,
                    prompt=request.prompt,
                    style=request.style,
                    size=request.size,
                    format=request.format,
                    asset_id=upload.asset_id,
                    secure_url=upload.secure_url,
                    provider=output.provider,
                    metadata=output.metadata,
                )
            )

        await self.events.emit(
            request.request_id,
            PipelinePhase.COMPLETE,
            provider=result.provider,
            duration_ms=result.duration_ms,
            cached=False,
            attempts=len(attempts),
        )
        logger.info(
            "asset_generation_completed request_id=%s provider=%s asset_id=%s duration_ms=%.2f",
            request.request_id,
            result.provider,
            result.asset_id,
            result.duration_ms,
        )
        return result

    async def _serve_cached(
        self,
        request: GenerationRequest,
        record: CachedAssetRecord,
        tier: str,
        cache_key: str,
        started: float,
    ) -> GenerationResult:
        if request.idempotency_key and record.prompt != request.prompt:
            logger.warning(
                "asset_idempotency_key_reused key=%s cached_prompt_differs=true",
                cache_key,
            )

        result = GenerationResult(
            success=True,
            prompt=record.prompt,
            style=record.style,
            size=record.size,
            format=record.format,
            secure_url=record.secure_url,
            asset_id=record.asset_id,
            provider=record.provider,
            provider_metadata=record.metadata or None,
            cached=True,
            cache_key=cache_key,
            duration_ms=_elapsed_ms(started),
            request_id=request.request_id,
        )
        await self.events.emit(
            request.request_id,
            PipelinePhase.CACHE_HIT,
            provider=record.provider,
            tier=tier,
        )
        await self.events.emit(
            request.request_id,
            PipelinePhase.COMPLETE,
            provider=record.provider,
            duration_ms=result.duration_ms,
            cached=True,
        )
        return result

    async def _on_attempt(self, request: GenerationRequest, attempt: ProviderAttempt) -> None:
        await self.events.emit(
            request.request_id,
            PipelinePhase.PROVIDER_ATTEMPT,
            success=attempt.success,
            provider=attempt.provider,
            duration_ms=attempt.duration_ms,
            error=attempt.error_code,
        )

    # ===== 存储直通操作（不经过生成/缓存） =====

    async def upload_media(
        self,
        file_url: str,
        *,
        public_id: str | None = None,
        folder: str | None = None,
        resource_type: str = "image",
    ) -> dict[str, Any]:
        """把远程媒体（URL 或 data URI）通过签名上传写入资产存储"""
        source = (file_url or "").strip()
        if not source:
            raise AssetValidationError("file_url is required", field="file_url")
        if urlparse(source).scheme not in _MEDIA_SCHEMES:
            raise AssetValidationError("file_url must be an http(s) URL or data URI", field="file_url")

        upload = await self.uploader.upload(
            source,
            public_id=validate_public_id(public_id) if public_id else None,
            folder=folder,
            resource_type=resource_type or "image",
        )
        return {"success": True, **upload.model_dump()}

    async def transform_image(
        self,
        public_id: str,
        transformation: str,
        *,
        format: str | None = None,
    ) -> dict[str, Any]:
        """返回带变换参数的分发 URL（如 c_fill,w_1080,h_608）"""
        if not public_id or not transformation:
            raise AssetValidationError("transform_image requires public_id and transformation")
        cloud_name = await self.uploader.secrets.get_secret(settings.ASSET_STORE_CLOUD_NAME_KEY)
        if not cloud_name:
            raise AssetGenerationError(
                ErrorCode.MISSING_CREDENTIALS,
                f"{settings.ASSET_STORE_CLOUD_NAME_KEY} is not configured",
            )
        url = build_delivery_url(
            cloud_name,
            validate_public_id(public_id),
            transformation=transformation.strip(),
            format=format or settings.ASSET_DEFAULT_FORMAT,
        )
        return {
            "success": True,
            "url": url,
            "public_id": public_id,
            "transformation": transformation,
        }


def build_asset_generation_service(
    *,
    secrets: SecretSource | None = None,
    durable_store: DurableAssetStore | None = None,
    event_sink: EventSink | None = None,
    provider_names: list[str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    configure_logging: bool = True,
) -> AssetGenerationService:
    """
    按配置装配编排服务（单进程内应复用同一实例，以共享在途登记与易失层）

    - configure_logging=True 时安装 loguru 日志（含标准库 logging 拦截）；宿主已自行配置时传 False
    - 未传入 durable_store 时使用共享的 Redis CacheService；若宿主尚未调用 cache.init()，在此初始化。
      REDIS_URL 为空时持久层不可用，写入失败只记日志，易失层也不会写入（即不缓存）
    """
    if configure_logging:
        setup_logging()
    if durable_store is None and not cache.enabled:
        cache.init()

    secret_source = secrets or EnvSecretSource()
    chain = build_provider_chain(
        provider_names or settings.ASSET_PROVIDER_CHAIN,
        secret_source,
        transport=transport,
    )
    return AssetGenerationService(
        chain=chain,
        uploader=SignedUploader(secret_source, transport=transport),
        asset_cache=TwoTierAssetCache(durable_store or RedisAssetStore()),
        coordinator=SingleFlight(),
        events=EventEmitter(event_sink),
    )


__all__ = [
    "AssetGenerationService",
    "build_asset_generation_service",
]
