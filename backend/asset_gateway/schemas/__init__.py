from .asset_generation import (
    CachedAssetRecord,
    GenerationRequest,
    GenerationResult,
    ProviderAttempt,
    UploadResult,
)

__all__ = [
    "CachedAssetRecord",
    "GenerationRequest",
    "GenerationResult",
    "ProviderAttempt",
    "UploadResult",
]
