from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Protocol

from pydantic import Field

from asset_gateway.core.config import settings
from asset_gateway.schemas.base import BaseSchema
from asset_gateway.utils.best_effort import best_effort

logger = logging.getLogger(__name__)


class PipelinePhase(str, Enum):
    """流水线生命周期阶段"""

    START = "start"
    CACHE_HIT = "cache_hit"
    PROVIDER_ATTEMPT = "provider_attempt"
    UPLOAD = "upload"
    COMPLETE = "complete"
    FAILED = "failed"


class PipelineEvent(BaseSchema):
    request_id: str
    phase: PipelinePhase
    success: bool
    provider: str | None = None
    duration_ms: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class EventSink(Protocol):
    async def log_event(self, event: PipelineEvent) -> None: ...


class LoggingEventSink:
    """默认事件输出：写结构化日志"""

    async def log_event(self, event: PipelineEvent) -> None:
        logger.info(
            "asset_pipeline_event request_id=%s phase=%s success=%s provider=%s duration_ms=%s metadata=%s",
            event.request_id,
            event.phase.value,
            event.success,
            event.provider,
            f"{event.duration_ms:.2f}" if event.duration_ms is not None else None,
            event.metadata,
        )


class EventEmitter:
    """事件上报（fire-and-forget）：关闭时直接跳过，sink 异常只记日志，绝不影响流水线"""

    def __init__(self, sink: EventSink | None = None, enabled: bool | None = None):
        self.sink = sink or LoggingEventSink()
        self.enabled = settings.ASSET_EVENT_LOG_ENABLED if enabled is None else enabled

    async def emit(
        self,
        request_id: str,
        phase: PipelinePhase,
        *,
        success: bool = True,
        provider: str | None = None,
        duration_ms: float | None = None,
        **metadata: Any,
    ) -> None:
        if not self.enabled:
            return
        event = PipelineEvent(
            request_id=request_id,
            phase=phase,
            success=success,
            provider=provider,
            duration_ms=duration_ms,
            metadata={k: v for k, v in metadata.items() if v is not None},
        )
        await best_effort(f"log_event phase={phase.value}", self.sink.log_event, event)


__all__ = [
    "EventEmitter",
    "EventSink",
    "LoggingEventSink",
    "PipelineEvent",
    "PipelinePhase",
]
