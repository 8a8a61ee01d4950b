"""
PIX Key Validation

Detects the type of a PIX key (CPF, CNPJ, email, phone, random/EVP) and
validates its format. Phone keys are parsed with ``phonenumbers`` and must
be valid Brazilian numbers.
"""

import re
from dataclasses import dataclass

import phonenumbers
from phonenumbers import NumberParseException

from tokenops.utils.observability import logger


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
RANDOM_KEY_RE = re.compile(r"^[a-f0-9-]{36}$")
DOCUMENT_RE = re.compile(r"^[\d.\-/ ]+$")

BRAZIL_REGION = "BR"


@dataclass
class PixKeyCheck:
    """Result of validating one key."""
    key_type: str
    valid: bool
    masked: str


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value)


def detect_pix_key_type(key: str) -> str:
    """
    Classify a PIX key.

    Order: email ('@'), phone ('+55' prefix), CPF (11 digits),
    CNPJ (14 digits), random (36-char UUID), otherwise "unknown".

    Example:
        >>> detect_pix_key_type("11999999999")
        'cpf'
    """
    key = (key or "").strip()
    if not key:
        return "unknown"
    if "@" in key:
        return "email"
    if key.startswith("+"):
        return "phone" if key.startswith("+55") else "unknown"
    if DOCUMENT_RE.match(key):
        digits = _digits(key)
        if len(digits) == 11:
            return "cpf"
        if len(digits) == 14:
            return "cnpj"
    if len(key) == 36 and RANDOM_KEY_RE.match(key.lower()):
        return "random"
    return "unknown"


def _valid_phone(key: str) -> bool:
    try:
        number = phonenumbers.parse(key, BRAZIL_REGION)
    except NumberParseException as e:
        logger.debug(f"PIX phone key rejected: {e}")
        return False
    return (
        phonenumbers.is_valid_number(number)
        and phonenumbers.region_code_for_number(number) == BRAZIL_REGION
    )


def validate_pix_key(key: str, key_type: str | None = None) -> bool:
    """
    Check a key's format for its (given or detected) type.

    "unknown" is never valid.
    """
    key = (key or "").strip()
    key_type = key_type or detect_pix_key_type(key)

    if key_type == "email":
        return bool(EMAIL_RE.match(key))
    if key_type == "cpf":
        return len(_digits(key)) == 11
    if key_type == "cnpj":
        return len(_digits(key)) == 14
    if key_type == "phone":
        return _valid_phone(key)
    if key_type == "random":
        return bool(RANDOM_KEY_RE.match(key.lower()))
    return False


def mask_pix_key(key: str) -> str:
    """Mask a key for logs and API responses."""
    if not key:
        return ""
    if "@" in key:
        username, _, domain = key.partition("@")
        return f"{username[:2]}***@{domain}"
    if len(key) == 11:
        return f"***{key[-3:]}"
    return f"***{key[-4:]}"


def check_pix_key(key: str) -> PixKeyCheck:
    key_type = detect_pix_key_type(key)
    return PixKeyCheck(key_type=key_type, valid=validate_pix_key(key, key_type), masked=mask_pix_key(key))
