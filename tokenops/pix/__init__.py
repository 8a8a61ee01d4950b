"""
PIX Integration
Key validation and the payment provider protocol.
"""
from tokenops.pix.keys import check_pix_key, detect_pix_key_type, mask_pix_key, validate_pix_key
from tokenops.pix.provider import MockPixProvider, PixProvider, build_pix_provider

__all__ = [
    "check_pix_key",
    "detect_pix_key_type",
    "mask_pix_key",
    "validate_pix_key",
    "MockPixProvider",
    "PixProvider",
    "build_pix_provider",
]
