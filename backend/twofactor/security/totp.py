# backend/twofactor/security/totp.py
"""
Time-based one-time password checks (RFC 6238 on top of pyotp's HOTP).

Every function takes the current time explicitly; nothing here reads the
wall clock.
"""
from __future__ import annotations

import base64
import binascii
import hmac
import logging
import math

import pyotp

from twofactor.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 2
DEFAULT_STEP = 30
DEFAULT_DIGITS = 6


def is_valid_base32(secret: str | None) -> bool:
    if not secret or not isinstance(secret, str):
        return False
    padded = secret + "=" * ((8 - len(secret) % 8) % 8)
    try:
        return len(base64.b32decode(padded, casefold=True)) > 0
    except (binascii.Error, ValueError):
        return False


def ensure_valid_secret(secret: str | None) -> str:
    if not is_valid_base32(secret):
        raise ConfigurationError("TOTP secret is not valid base32")
    return secret


def time_step(now: float, step_seconds: int = DEFAULT_STEP) -> int:
    return int(math.floor(now / step_seconds))


def code_at(
    secret: str,
    for_time: float,
    *,
    step_seconds: int = DEFAULT_STEP,
    digits: int = DEFAULT_DIGITS,
) -> str:
    """The code an authenticator app would display at ``for_time``."""
    ensure_valid_secret(secret)
    totp = pyotp.TOTP(secret, digits=digits, interval=step_seconds)
    return totp.generate_otp(time_step(for_time, step_seconds))


def match_time_step(
    secret: str,
    submitted_code: str,
    *,
    now: float,
    tolerance_windows: int = DEFAULT_TOLERANCE,
    step_seconds: int = DEFAULT_STEP,
    digits: int = DEFAULT_DIGITS,
) -> int | None:
    """
    Return the time-step index the submitted code belongs to, or None.

    Offsets are tried from -tolerance to +tolerance; the first match wins.
    """
    code = (submitted_code or "").strip()
    if len(code) != digits or not (code.isascii() and code.isdigit()):
        return None

    if not is_valid_base32(secret):
        logger.error("Refusing TOTP check: stored secret is not valid base32")
        return None

    totp = pyotp.TOTP(secret, digits=digits, interval=step_seconds)
    current = time_step(now, step_seconds)
    for offset in range(-tolerance_windows, tolerance_windows + 1):
        counter = current + offset
        if counter < 0:
            continue
        if hmac.compare_digest(totp.generate_otp(counter), code):
            return counter
    return None


def verify(
    secret: str,
    submitted_code: str,
    *,
    now: float,
    tolerance_windows: int = DEFAULT_TOLERANCE,
    step_seconds: int = DEFAULT_STEP,
    digits: int = DEFAULT_DIGITS,
) -> bool:
    return (
        match_time_step(
            secret,
            submitted_code,
            now=now,
            tolerance_windows=tolerance_windows,
            step_seconds=step_seconds,
            digits=digits,
        )
        is not None
    )
