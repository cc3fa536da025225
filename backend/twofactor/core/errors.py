"""
Error taxonomy for the two-factor core.

A failed code check is not an exception: operations that can fail
verification return a ``VerificationFailed`` value, so callers have to
look at it. Everything else is raised.
"""
from __future__ import annotations

from dataclasses import dataclass


class TwoFactorError(Exception):
    """Base class for two-factor errors."""


class InvalidStateError(TwoFactorError):
    """Operation attempted from a state that does not permit it."""

    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(f"{operation} not allowed in state {state!r}")


class StoreConflict(TwoFactorError):
    """Concurrent mutation detected by the credential store."""

    def __init__(self, principal_id: str):
        self.principal_id = principal_id
        super().__init__(f"Concurrent update of credential for principal {principal_id!r}")


class ConfigurationError(TwoFactorError):
    """Malformed secret, missing issuer/label, bad key or no entropy."""


@dataclass(frozen=True)
class VerificationFailed:
    reason: str = "invalid_code"

    def __bool__(self) -> bool:
        return False
