from __future__ import annotations

from collections.abc import Sequence

import httpx

from .base import ImageProvider, ProviderOutput, classify_status
from .chain import ProviderChain
from .gemini_images import GeminiImageProvider
from .openai_images import OpenAIImageProvider
from .stability_images import StabilityImageProvider
from asset_gateway.services.secrets.manager import SecretSource

PROVIDER_REGISTRY: dict[str, type[ImageProvider]] = {
    OpenAIImageProvider.name: OpenAIImageProvider,
    GeminiImageProvider.name: GeminiImageProvider,
    StabilityImageProvider.name: StabilityImageProvider,
}


def build_provider_chain(
    names: Sequence[str],
    secrets: SecretSource,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderChain:
    """按名称顺序构建 provider 链，未知名称直接报错（配置错误应尽早暴露）"""
    providers: list[ImageProvider] = []
    for name in names:
        provider_cls = PROVIDER_REGISTRY.get(name.strip().lower())
        if provider_cls is None:
            raise ValueError(f"Unknown image provider: {name}")
        providers.append(provider_cls(secrets, transport=transport))
    return ProviderChain(providers)


__all__ = [
    "GeminiImageProvider",
    "ImageProvider",
    "OpenAIImageProvider",
    "PROVIDER_REGISTRY",
    "ProviderChain",
    "ProviderOutput",
    "StabilityImageProvider",
    "build_provider_chain",
    "classify_status",
]
