from __future__ import annotations

from urllib.parse import quote

from asset_gateway.core.config import settings
from asset_gateway.core.exceptions import AssetValidationError


def build_delivery_url(
    cloud_name: str,
    public_id: str,
    *,
    transformation: str | None = None,
    format: str | None = None,
    resource_type: str = "image",
) -> str:
    """拼接资产分发 URL，可带变换段（如 c_fill,w_1080,h_608）"""
    if not public_id:
        raise AssetValidationError("public_id is required", field="public_id")
    base = settings.ASSET_STORE_DELIVERY_URL.format(
        cloud_name=cloud_name,
        resource_type=resource_type or "image",
    ).rstrip("/")
    segments = [base]
    if transformation:
        segments.append(transformation.strip("/"))
    path = quote(public_id.strip("/"), safe="/")
    if format:
        path = f"{path}.{format.lstrip('.')}"
    segments.append(path)
    return "/".join(segments)


__all__ = ["build_delivery_url"]
