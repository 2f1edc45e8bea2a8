from __future__ import annotations

import math
from typing import Any

import httpx

from asset_gateway.core.config import settings
from asset_gateway.core.exceptions import ErrorCode
from asset_gateway.core.http_client import RetryPolicy
from asset_gateway.schemas.asset_generation import GenerationRequest
from asset_gateway.services.providers.base import ImageProvider, ProviderOutput, mime_for_format

SUPPORTED_ASPECT_RATIOS = ("16:9", "1:1", "21:9", "2:3", "3:2", "4:5", "5:4", "9:16", "9:21")
_OUTPUT_FORMATS = {"png": "png", "jpg": "jpeg", "jpeg": "jpeg", "webp": "webp"}


def aspect_ratio_for_size(size: str | None) -> str:
    """把 WxH 映射为最接近的受支持纵横比，无法解析时返回 1:1"""
    try:
        width_raw, height_raw = (size or "").lower().split("x", 1)
        width, height = int(width_raw), int(height_raw)
    except ValueError:
        return "1:1"
    if width <= 0 or height <= 0:
        return "1:1"
    target = math.log(width / height)

    def _distance(ratio: str) -> float:
        w, h = ratio.split(":")
        return abs(math.log(int(w) / int(h)) - target)

    return min(SUPPORTED_ASPECT_RATIOS, key=_distance)


class StabilityImageProvider(ImageProvider):
    """Stability AI Stable Image Core（multipart 请求，JSON 返回 base64）"""

    name = "stability"
    credential_name = settings.STABILITY_API_KEY_NAME

    def default_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout=settings.STABILITY_IMAGE_TIMEOUT,
            max_retries=settings.STABILITY_IMAGE_MAX_RETRIES,
            retry_delay=settings.PROVIDER_RETRY_DELAY,
            retry_backoff=settings.PROVIDER_RETRY_BACKOFF,
        )

    def build_form(self, request: GenerationRequest) -> dict[str, str]:
        return {
            "prompt": request.styled_prompt,
            "aspect_ratio": aspect_ratio_for_size(request.size),
            "output_format": _OUTPUT_FORMATS.get(request.format.lower(), "png"),
        }

    async def _generate(
        self,
        client: httpx.AsyncClient,
        request: GenerationRequest,
        api_key: str,
    ) -> ProviderOutput:
        form = self.build_form(request)
        response = await self._post(
            client,
            settings.STABILITY_IMAGE_URL,
            data=form,
            # 接口只接受 multipart/form-data
            files={"none": (None, "")},
            headers={"Authorization": f"Bearer {api_key}", "Accept": "application/json"},
        )
        body = self._json(response)

        finish_reason = body.get("finish_reason")
        if finish_reason == "CONTENT_FILTERED":
            raise self._error(ErrorCode.INVALID_RESPONSE, "Stability filtered the generated image")

        metadata: dict[str, Any] = {"aspect_ratio": form["aspect_ratio"]}
        if finish_reason:
            metadata["finish_reason"] = finish_reason
        if body.get("seed") is not None:
            metadata["seed"] = body["seed"]

        return self._from_base64(
            body.get("image"),
            mime_type=mime_for_format(form["output_format"]),
            metadata=metadata,
        )


__all__ = ["StabilityImageProvider", "aspect_ratio_for_size"]
