from __future__ import annotations

from typing import Any

import httpx

from asset_gateway.core.config import settings
from asset_gateway.core.exceptions import ErrorCode
from asset_gateway.core.http_client import RetryPolicy
from asset_gateway.schemas.asset_generation import GenerationRequest
from asset_gateway.services.providers.base import ImageProvider, ProviderOutput, mime_for_format

_OUTPUT_FORMATS = {"png": "png", "jpg": "jpeg", "jpeg": "jpeg", "webp": "webp"}


class OpenAIImageProvider(ImageProvider):
    """
    OpenAI Images API

    失败多为组织验证/参数问题，不属于瞬时故障，调用级不重试。
    """

    name = "openai"
    credential_name = settings.OPENAI_API_KEY_NAME

    def default_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout=settings.OPENAI_IMAGE_TIMEOUT,
            max_retries=settings.OPENAI_IMAGE_MAX_RETRIES,
            retry_delay=settings.PROVIDER_RETRY_DELAY,
            retry_backoff=settings.PROVIDER_RETRY_BACKOFF,
        )

    def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        model = settings.OPENAI_IMAGE_MODEL
        payload: dict[str, Any] = {
            "model": model,
            "prompt": request.styled_prompt,
            "size": request.size,
            "n": 1,
        }
        if model.startswith("dall-e"):
            payload["response_format"] = "b64_json"
        else:
            output_format = _OUTPUT_FORMATS.get(request.format.lower())
            if output_format:
                payload["output_format"] = output_format
        return payload

    async def _generate(
        self,
        client: httpx.AsyncClient,
        request: GenerationRequest,
        api_key: str,
    ) -> ProviderOutput:
        payload = self.build_payload(request)
        response = await self._post(
            client,
            settings.OPENAI_IMAGE_URL,
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        body = self._json(response)

        items = body.get("data")
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            raise self._error(ErrorCode.INVALID_RESPONSE, "OpenAI response contains no image data")
        item = items[0]

        metadata: dict[str, Any] = {"model": payload["model"]}
        if item.get("revised_prompt"):
            metadata["revised_prompt"] = item["revised_prompt"]
        if isinstance(body.get("usage"), dict):
            metadata["usage"] = body["usage"]

        if item.get("b64_json"):
            return self._from_base64(
                item["b64_json"],
                mime_type=mime_for_format(payload.get("output_format") or request.format),
                metadata=metadata,
            )
        if item.get("url"):
            return self._from_url(item["url"], metadata=metadata)
        raise self._error(ErrorCode.INVALID_RESPONSE, "OpenAI image item has neither b64_json nor url")


__all__ = ["OpenAIImageProvider"]
