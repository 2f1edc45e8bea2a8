from __future__ import annotations

from typing import Any

import httpx

from asset_gateway.core.config import settings
from asset_gateway.core.exceptions import ErrorCode
from asset_gateway.core.http_client import RetryPolicy
from asset_gateway.schemas.asset_generation import GenerationRequest
from asset_gateway.services.providers.base import ImageProvider, ProviderOutput


class GeminiImageProvider(ImageProvider):
    """Gemini generateContent（图片模态），图片以 inlineData 返回"""

    name = "gemini"
    credential_name = settings.GEMINI_API_KEY_NAME

    def default_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout=settings.GEMINI_IMAGE_TIMEOUT,
            max_retries=settings.GEMINI_IMAGE_MAX_RETRIES,
            retry_delay=settings.PROVIDER_RETRY_DELAY,
            retry_backoff=settings.PROVIDER_RETRY_BACKOFF,
        )

    def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        prompt = request.styled_prompt
        if request.size:
            prompt = f"{prompt}\nTarget size: {request.size}."
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

    async def _generate(
        self,
        client: httpx.AsyncClient,
        request: GenerationRequest,
        api_key: str,
    ) -> ProviderOutput:
        model = settings.GEMINI_IMAGE_MODEL
        response = await self._post(
            client,
            settings.GEMINI_IMAGE_URL.format(model=model),
            json=self.build_payload(request),
            headers={"x-goog-api-key": api_key},
        )
        body = self._json(response)

        candidates = body.get("candidates") or []
        if not candidates:
            block_reason = (body.get("promptFeedback") or {}).get("blockReason")
            reason = f" (blocked: {block_reason})" if block_reason else ""
            raise self._error(ErrorCode.INVALID_RESPONSE, f"Gemini returned no candidates{reason}")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        texts: list[str] = []
        for part in parts:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                metadata: dict[str, Any] = {"model": model}
                if candidate.get("finishReason"):
                    metadata["finish_reason"] = candidate["finishReason"]
                if texts:
                    metadata["text"] = "\n".join(texts)
                return self._from_base64(
                    inline["data"],
                    mime_type=inline.get("mimeType") or inline.get("mime_type"),
                    metadata=metadata,
                )
            if part.get("text"):
                texts.append(part["text"])

        raise self._error(ErrorCode.INVALID_RESPONSE, "Gemini response contains no image part")


__all__ = ["GeminiImageProvider"]
