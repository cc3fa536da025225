# backend/twofactor/services/twofa.py
"""
Load -> transition -> save, per principal.

A StoreConflict means someone else changed the record between our load and
save. The whole operation is re-run once from a fresh load; a second
conflict is raised to the caller.
"""
from __future__ import annotations

import logging
from typing import Callable, TypeVar

from twofactor.core.errors import StoreConflict, VerificationFailed
from twofactor.crud.credentials import CredentialStore
from twofactor.security.enrollment import (
    AuthResult,
    Credential,
    EnrollmentMaterial,
    TwoFactorStateMachine,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (credential to persist or None, value handed back to the caller)
Step = Callable[[Credential], tuple[Credential | None, T]]


class TwoFactorService:
    def __init__(self, store: CredentialStore, machine: TwoFactorStateMachine):
        self.store = store
        self.machine = machine

    def status(self, principal_id: str) -> Credential:
        return self.store.load(principal_id) or Credential.disabled(principal_id)

    def setup(self, principal_id: str, label: str) -> EnrollmentMaterial:
        def step(cred: Credential):
            updated, material = self.machine.begin_enrollment(cred, label)
            return updated, material

        return self._run(principal_id, step)

    def verify_setup(self, principal_id: str, code: str) -> Credential | VerificationFailed:
        def step(cred: Credential):
            result = self.machine.confirm_enrollment(cred, code)
            if isinstance(result, VerificationFailed):
                return None, result
            return result, result

        return self._run(principal_id, step)

    def verify_login(self, principal_id: str, code: str) -> AuthResult:
        def step(cred: Credential):
            result = self.machine.authenticate(cred, code)
            if not result.verified or result.credential == cred:
                return None, result
            return result.credential, result

        return self._run(principal_id, step)

    def disable(self, principal_id: str, code: str) -> Credential | VerificationFailed:
        def step(cred: Credential):
            result = self.machine.disable(cred, code)
            if isinstance(result, VerificationFailed):
                return None, result
            return result, result

        return self._run(principal_id, step)

    def _run(self, principal_id: str, step: Step) -> T:
        try:
            return self._attempt(principal_id, step)
        except StoreConflict:
            logger.info("Store conflict for principal %s, retrying once", principal_id)
            return self._attempt(principal_id, step)

    def _attempt(self, principal_id: str, step: Step) -> T:
        cred = self.status(principal_id)
        to_save, value = step(cred)
        if to_save is None:
            return value
        return _with_saved(value, self.store.save(to_save))


def _with_saved(value, saved: Credential):
    """Hand back the persisted credential (with its new version)."""
    if isinstance(value, Credential):
        return saved
    if isinstance(value, AuthResult):
        return AuthResult(
            verified=value.verified,
            used_backup_code=value.used_backup_code,
            credential=saved,
        )
    return value
