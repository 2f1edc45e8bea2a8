from .delivery import build_delivery_url
from .public_id import derive_public_id, slugify, validate_public_id
from .signed_upload import SignedUploader, canonicalize_params, sign_params

__all__ = [
    "SignedUploader",
    "build_delivery_url",
    "canonicalize_params",
    "derive_public_id",
    "sign_params",
    "slugify",
    "validate_public_id",
]
