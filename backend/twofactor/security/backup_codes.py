# backend/twofactor/security/backup_codes.py
"""
Single-use recovery codes.

Stored codes are uppercase; submitted codes are normalised before the
lookup. Every stored code is compared on every call, so an empty ledger and
a miss are indistinguishable to the caller.
"""
from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class BackupCodeMatch:
    matched: bool
    remaining: frozenset[str]


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _digest(code: str) -> bytes:
    return hashlib.sha256(code.encode("utf-8")).digest()


def consume(codes: Iterable[str], submitted: str | None) -> BackupCodeMatch:
    """Remove ``submitted`` from ``codes`` if present."""
    stored = frozenset(codes or ())
    normalized = normalize_code(submitted)
    # equal-length digests so timing does not depend on the submitted length
    candidate = _digest(normalized)

    hit: str | None = None
    for code in stored:
        if hmac.compare_digest(_digest(code), candidate) and normalized:
            hit = code

    if hit is None:
        return BackupCodeMatch(matched=False, remaining=stored)
    return BackupCodeMatch(matched=True, remaining=stored - {hit})
