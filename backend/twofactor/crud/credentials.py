# backend/twofactor/crud/credentials.py
from __future__ import annotations

import json
import threading
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from twofactor.core.errors import StoreConflict
from twofactor.crypto.aead import open_secret, seal_secret
from twofactor.models.credential import TwoFactorCredential
from twofactor.security.enrollment import Credential, CredentialState


class CredentialStore(Protocol):
    """
    Persistence boundary for two-factor credentials.

    ``load`` returns None for a principal that never enrolled. ``save`` only
    succeeds if the stored version still equals ``credential.version`` and
    returns the credential with its new version; otherwise it raises
    StoreConflict and the caller must start over from a fresh ``load``.
    """

    def load(self, principal_id: str) -> Credential | None: ...

    def save(self, credential: Credential) -> Credential: ...


class InMemoryCredentialStore:
    def __init__(self):
        self._rows: dict[str, Credential] = {}
        self._lock = threading.Lock()

    def load(self, principal_id: str) -> Credential | None:
        with self._lock:
            return self._rows.get(principal_id)

    def save(self, credential: Credential) -> Credential:
        credential.check_invariants()
        with self._lock:
            current = self._rows.get(credential.principal_id)
            current_version = current.version if current else 0
            if current_version != credential.version:
                raise StoreConflict(credential.principal_id)
            stored = replace(credential, version=credential.version + 1)
            self._rows[credential.principal_id] = stored
            return stored


def _dump_codes(codes: frozenset[str]) -> str:
    return json.dumps(sorted(codes))


def _load_codes(raw: str | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(json.loads(raw))


class SqlCredentialStore:
    def __init__(self, db: Session, encryption_key: bytes | None = None):
        self.db = db
        self.encryption_key = encryption_key

    def load(self, principal_id: str) -> Credential | None:
        stmt = select(TwoFactorCredential).where(TwoFactorCredential.principal_id == principal_id)
        row = self.db.execute(stmt).scalar_one_or_none()
        if row is None:
            return None
        return Credential(
            principal_id=row.principal_id,
            state=CredentialState(row.state),
            secret=open_secret(self.encryption_key, row.secret, principal_id),
            pending_secret=open_secret(self.encryption_key, row.pending_secret, principal_id),
            backup_codes=_load_codes(row.backup_codes),
            pending_backup_codes=_load_codes(row.pending_backup_codes),
            last_verified_window=row.last_verified_window,
            version=row.version,
        )

    def save(self, credential: Credential) -> Credential:
        credential.check_invariants()
        pid = credential.principal_id
        values = {
            "state": credential.state.value,
            "secret": seal_secret(self.encryption_key, credential.secret, pid) or None,
            "pending_secret": seal_secret(self.encryption_key, credential.pending_secret, pid) or None,
            "backup_codes": _dump_codes(credential.backup_codes),
            "pending_backup_codes": _dump_codes(credential.pending_backup_codes),
            "last_verified_window": credential.last_verified_window,
            "version": credential.version + 1,
            "updated_at": datetime.utcnow(),
        }

        if credential.version == 0:
            self.db.add(TwoFactorCredential(principal_id=pid, **values))
            try:
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                raise StoreConflict(pid) from e
        else:
            stmt = (
                update(TwoFactorCredential)
                .where(
                    TwoFactorCredential.principal_id == pid,
                    TwoFactorCredential.version == credential.version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            if result.rowcount != 1:
                self.db.rollback()
                raise StoreConflict(pid)
            self.db.commit()

        # drop identity-map copies so the next load sees what was written
        self.db.expire_all()
        return replace(credential, version=credential.version + 1)
