from __future__ import annotations

import re
import secrets

from asset_gateway.core.config import settings
from asset_gateway.core.exceptions import AssetValidationError

_SLUG_SEPARATOR = "-"
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_PUBLIC_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-./]*$")
_PUBLIC_ID_MAX_LENGTH = 255
_FALLBACK_SLUG = "asset"


def slugify(text: str | None, max_length: int | None = None) -> str:
    """小写化，非字母数字连续片段折叠为单个 '-'，并按长度截断。"""
    limit = max_length if max_length is not None else settings.ASSET_PUBLIC_ID_MAX_SLUG
    slug = _NON_ALNUM_RE.sub(_SLUG_SEPARATOR, (text or "").lower()).strip(_SLUG_SEPARATOR)
    if limit and len(slug) > limit:
        slug = slug[:limit].rstrip(_SLUG_SEPARATOR)
    return slug


def derive_public_id(prompt: str, style: str | None = None, *, max_length: int | None = None) -> str:
    """
    由提示词/风格生成资产 ID：slug + 短随机后缀。

    后缀用于区分语义相近但不同的请求；同一请求的重试由缓存 key 去重，不依赖 ID 相同。
    """
    source = " ".join(part for part in (prompt, style) if part)
    slug = slugify(source, max_length=max_length) or _FALLBACK_SLUG
    return f"{slug}{_SLUG_SEPARATOR}{secrets.token_hex(3)}"


def validate_public_id(value: str) -> str:
    public_id = (value or "").strip().strip("/")
    if not public_id:
        raise AssetValidationError("public_id must not be empty", field="public_id")
    if len(public_id) > _PUBLIC_ID_MAX_LENGTH:
        raise AssetValidationError("public_id is too long", field="public_id")
    if ".." in public_id or not _PUBLIC_ID_RE.match(public_id):
        raise AssetValidationError(f"invalid public_id: {value!r}", field="public_id")
    return public_id


__all__ = ["derive_public_id", "slugify", "validate_public_id"]
