# backend/twofactor/security/enrollment.py
"""
Two-factor credential lifecycle: disabled -> pending -> enabled -> disabled.

Credentials are immutable; every operation returns a new ``Credential`` and
never touches the one it was given, so a failed call leaves nothing half
written.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum

from twofactor.core.clock import Clock
from twofactor.core.errors import InvalidStateError, VerificationFailed
from twofactor.security import backup_codes as ledger
from twofactor.security import totp
from twofactor.security.twofa import DEFAULT_ISSUER, generate_backup_codes, generate_secret

logger = logging.getLogger(__name__)


class CredentialState(str, Enum):
    DISABLED = "disabled"
    PENDING = "pending"
    ENABLED = "enabled"


@dataclass(frozen=True)
class Credential:
    principal_id: str
    state: CredentialState = CredentialState.DISABLED
    secret: str = ""
    pending_secret: str = ""
    backup_codes: frozenset[str] = field(default_factory=frozenset)
    pending_backup_codes: frozenset[str] = field(default_factory=frozenset)
    last_verified_window: int | None = None
    version: int = 0

    @classmethod
    def disabled(cls, principal_id: str) -> "Credential":
        """The implicit record of a principal that never enrolled."""
        return cls(principal_id=principal_id)

    def check_invariants(self) -> None:
        if self.state is CredentialState.DISABLED:
            if self.secret or self.pending_secret or self.backup_codes or self.pending_backup_codes:
                raise ValueError("disabled credential still holds secret material")
        elif self.state is CredentialState.PENDING:
            if not self.pending_secret or self.secret:
                raise ValueError("pending credential needs a pending secret and no active one")
        elif self.state is CredentialState.ENABLED:
            if not self.secret:
                raise ValueError("enabled credential has no secret")


@dataclass(frozen=True)
class EnrollmentMaterial:
    """What the principal is shown once, at setup time."""

    secret_base32: str
    provisioning_uri: str
    backup_codes: frozenset[str]


@dataclass(frozen=True)
class AuthResult:
    verified: bool
    used_backup_code: bool
    credential: Credential


class TwoFactorStateMachine:
    def __init__(
        self,
        clock: Clock,
        *,
        issuer: str = DEFAULT_ISSUER,
        digits: int = totp.DEFAULT_DIGITS,
        period: int = totp.DEFAULT_STEP,
        tolerance: int = totp.DEFAULT_TOLERANCE,
        backup_code_count: int = 8,
        backup_code_length: int = 6,
        allow_restaging: bool = True,
        reject_replayed_codes: bool = True,
    ):
        self.clock = clock
        self.issuer = issuer
        self.digits = digits
        self.period = period
        self.tolerance = tolerance
        self.backup_code_count = backup_code_count
        self.backup_code_length = backup_code_length
        self.allow_restaging = allow_restaging
        self.reject_replayed_codes = reject_replayed_codes

    @classmethod
    def from_settings(cls, settings, clock: Clock) -> "TwoFactorStateMachine":
        return cls(
            clock,
            issuer=settings.totp_issuer,
            digits=settings.totp_digits,
            period=settings.totp_period,
            tolerance=settings.totp_tolerance,
            backup_code_count=settings.backup_code_count,
            backup_code_length=settings.backup_code_length,
            allow_restaging=settings.allow_restaging,
            reject_replayed_codes=settings.reject_replayed_codes,
        )

    # --- operations ---

    def begin_enrollment(
        self, credential: Credential, label: str
    ) -> tuple[Credential, EnrollmentMaterial]:
        """
        Stage a fresh secret and backup-code set.

        From disabled the credential moves to pending. From enabled the new
        material is staged next to the active secret, which keeps working
        until the re-enrollment is confirmed. From pending the staged material
        is replaced, or refused when ``allow_restaging`` is off.
        """
        if credential.state is CredentialState.PENDING and not self.allow_restaging:
            raise InvalidStateError("begin_enrollment", credential.state.value)

        material = generate_secret(label, self.issuer, digits=self.digits, period=self.period)
        codes = frozenset(generate_backup_codes(self.backup_code_count, self.backup_code_length))

        next_state = (
            CredentialState.ENABLED
            if credential.state is CredentialState.ENABLED
            else CredentialState.PENDING
        )
        updated = replace(
            credential,
            state=next_state,
            pending_secret=material.secret_base32,
            pending_backup_codes=codes,
        )
        logger.info(
            "2FA enrollment staged for principal %s (state %s)",
            credential.principal_id,
            next_state.value,
        )
        return updated, EnrollmentMaterial(
            secret_base32=material.secret_base32,
            provisioning_uri=material.provisioning_uri,
            backup_codes=codes,
        )

    def confirm_enrollment(
        self, credential: Credential, submitted_code: str
    ) -> Credential | VerificationFailed:
        staged = credential.state is CredentialState.PENDING or (
            credential.state is CredentialState.ENABLED and credential.pending_secret
        )
        if not staged:
            raise InvalidStateError("confirm_enrollment", credential.state.value)

        step = self._match(credential.pending_secret, submitted_code)
        if step is None:
            logger.info("2FA enrollment code rejected for principal %s", credential.principal_id)
            return VerificationFailed("invalid_code")

        logger.info("2FA enabled for principal %s", credential.principal_id)
        return replace(
            credential,
            state=CredentialState.ENABLED,
            secret=credential.pending_secret,
            pending_secret="",
            backup_codes=credential.pending_backup_codes,
            pending_backup_codes=frozenset(),
            last_verified_window=step,
        )

    def authenticate(self, credential: Credential, submitted_code: str) -> AuthResult:
        """Backup codes are checked first, then the TOTP secret."""
        if credential.state is not CredentialState.ENABLED:
            raise InvalidStateError("authenticate", credential.state.value)

        backup = ledger.consume(credential.backup_codes, submitted_code)
        if backup.matched:
            logger.info(
                "Backup code used by principal %s, %d left",
                credential.principal_id,
                len(backup.remaining),
            )
            return AuthResult(
                verified=True,
                used_backup_code=True,
                credential=replace(credential, backup_codes=backup.remaining),
            )

        step = self._match(credential.secret, submitted_code)
        if step is None or self._is_replay(credential, step):
            logger.info("2FA code rejected for principal %s", credential.principal_id)
            return AuthResult(verified=False, used_backup_code=False, credential=credential)

        updated = credential
        if self.reject_replayed_codes:
            updated = replace(credential, last_verified_window=step)
        return AuthResult(verified=True, used_backup_code=False, credential=updated)

    def disable(
        self, credential: Credential, submitted_code: str
    ) -> Credential | VerificationFailed:
        if credential.state is not CredentialState.ENABLED:
            raise InvalidStateError("disable", credential.state.value)

        result = self.authenticate(credential, submitted_code)
        if not result.verified:
            return VerificationFailed("invalid_code")

        logger.info("2FA disabled for principal %s", credential.principal_id)
        return Credential(
            principal_id=credential.principal_id,
            state=CredentialState.DISABLED,
            version=credential.version,
        )

    # --- helpers ---

    def _match(self, secret: str, submitted_code: str) -> int | None:
        return totp.match_time_step(
            secret,
            submitted_code,
            now=self.clock.now(),
            tolerance_windows=self.tolerance,
            step_seconds=self.period,
            digits=self.digits,
        )

    def _is_replay(self, credential: Credential, step: int) -> bool:
        if not self.reject_replayed_codes or credential.last_verified_window is None:
            return False
        if step <= credential.last_verified_window:
            logger.warning(
                "Replayed 2FA code for principal %s (step %d)", credential.principal_id, step
            )
            return True
        return False
