from .asset_cache import RedisAssetStore, TwoTierAssetCache, VolatileAssetCache
from .cache_key import build_cache_key, resolve_cache_key
from .coordinator import SingleFlight
from .events import EventEmitter, LoggingEventSink, PipelineEvent, PipelinePhase
from .service import AssetGenerationService, build_asset_generation_service

__all__ = [
    "AssetGenerationService",
    "EventEmitter",
    "LoggingEventSink",
    "PipelineEvent",
    "PipelinePhase",
    "RedisAssetStore",
    "SingleFlight",
    "TwoTierAssetCache",
    "VolatileAssetCache",
    "build_asset_generation_service",
    "build_cache_key",
    "resolve_cache_key",
]
