# backend/twofactor/security/twofa.py
"""
Enrollment material: shared TOTP secrets, provisioning URIs and backup codes.
"""
from __future__ import annotations

import base64
import logging
import secrets
import string
from dataclasses import dataclass
from io import BytesIO
from urllib.parse import quote, urlencode

import pyotp
import qrcode
from qrcode.constants import ERROR_CORRECT_M
from qrcode.image.pil import PilImage

from twofactor.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ISSUER = "Two Factor"

# 32 base32 chars = 160 bits
SECRET_LENGTH = 32
BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class EnrollmentSecret:
    secret_base32: str
    provisioning_uri: str


def generate_secret(
    label: str,
    issuer: str = DEFAULT_ISSUER,
    *,
    digits: int = 6,
    period: int = 30,
) -> EnrollmentSecret:
    """
    Generate a fresh shared secret and its otpauth:// URI.

    Raises:
        ConfigurationError: empty label/issuer or the OS entropy source failed
    """
    if not (label or "").strip():
        raise ConfigurationError("TOTP label is required")
    if not (issuer or "").strip():
        raise ConfigurationError("TOTP issuer is required")

    try:
        secret = pyotp.random_base32(length=SECRET_LENGTH)
    except (NotImplementedError, OSError) as e:
        logger.error("Entropy source unavailable while generating TOTP secret")
        raise ConfigurationError("Entropy source unavailable") from e

    uri = build_totp_uri(secret, label.strip(), issuer.strip(), digits=digits, period=period)
    return EnrollmentSecret(secret_base32=secret, provisioning_uri=uri)


def build_totp_uri(
    secret: str,
    label: str,
    issuer: str = DEFAULT_ISSUER,
    *,
    digits: int = 6,
    period: int = 30,
) -> str:
    """
    otpauth://totp/{issuer}:{label}?secret=..&issuer=..&algorithm=SHA1&digits=6&period=30

    algorithm, digits and period are always emitted, even at their defaults.
    """
    params = {
        "secret": secret,
        "issuer": issuer,
        "algorithm": "SHA1",
        "digits": str(int(digits)),
        "period": str(int(period)),
    }
    path = quote(issuer, safe="") + ":" + quote(label, safe="@")
    return "otpauth://totp/" + path + "?" + urlencode(params, quote_via=quote)


def generate_backup_codes(count: int = 8, length: int = 6) -> set[str]:
    """Draw ``count`` distinct uppercase alphanumeric codes from the OS CSPRNG."""
    if count < 1:
        raise ValueError("count must be >= 1")
    if length < 1:
        raise ValueError("length must be >= 1")
    if count > len(BACKUP_CODE_ALPHABET) ** length:
        raise ValueError("code space too small for requested count")

    codes: set[str] = set()
    while len(codes) < count:
        codes.add("".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(length)))
    return codes


def render_qr_data_url(uri: str, box_size: int = 10, border: int = 4) -> str:
    """Render a provisioning URI as a ``data:image/png;base64,...`` URL."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(image_factory=PilImage)

    with BytesIO() as buffer:
        img.save(buffer)
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"
