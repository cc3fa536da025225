"""Tests for the in-memory and SQLAlchemy credential stores."""

from __future__ import annotations

import os
from dataclasses import replace

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from twofactor.core.errors import ConfigurationError, StoreConflict
from twofactor.crud.credentials import SqlCredentialStore
from twofactor.models.credential import TwoFactorCredential
from twofactor.security.enrollment import Credential, CredentialState

SECRET = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"


def _enabled(principal_id="user-1", version=0):
    return Credential(
        principal_id=principal_id,
        state=CredentialState.ENABLED,
        secret=SECRET,
        backup_codes=frozenset({"ABC123", "XYZ789"}),
        last_verified_window=42,
        version=version,
    )


# =============================================================================
# InMemoryCredentialStore
# =============================================================================


def test_memory_load_missing(memory_store):
    assert memory_store.load("nobody") is None


def test_memory_save_bumps_version(memory_store):
    saved = memory_store.save(_enabled())
    assert saved.version == 1
    assert memory_store.load("user-1") == saved

    again = memory_store.save(replace(saved, backup_codes=frozenset({"ABC123"})))
    assert again.version == 2


def test_memory_stale_version_conflicts(memory_store):
    saved = memory_store.save(_enabled())
    memory_store.save(saved)

    with pytest.raises(StoreConflict) as exc:
        memory_store.save(saved)
    assert exc.value.principal_id == "user-1"


def test_memory_double_insert_conflicts(memory_store):
    memory_store.save(_enabled())
    with pytest.raises(StoreConflict):
        memory_store.save(_enabled())


def test_memory_rejects_invariant_violation(memory_store):
    with pytest.raises(ValueError):
        memory_store.save(Credential("user-1", CredentialState.ENABLED))


# =============================================================================
# SqlCredentialStore
# =============================================================================


def test_sql_round_trip(db_session):
    store = SqlCredentialStore(db_session)
    assert store.load("user-1") is None

    saved = store.save(_enabled())
    loaded = store.load("user-1")

    assert saved.version == 1
    assert loaded == saved


def test_sql_update_and_conflict(db_session):
    store = SqlCredentialStore(db_session)
    v1 = store.save(_enabled())
    v2 = store.save(replace(v1, backup_codes=frozenset({"XYZ789"})))

    assert v2.version == 2
    assert store.load("user-1").backup_codes == frozenset({"XYZ789"})

    with pytest.raises(StoreConflict):
        store.save(replace(v1, backup_codes=frozenset()))

    # the losing write left nothing behind
    assert store.load("user-1") == v2


def test_sql_concurrent_insert_conflicts(engine):
    Session = sessionmaker(bind=engine)
    a, b = Session(), Session()
    try:
        SqlCredentialStore(a).save(_enabled())
        with pytest.raises(StoreConflict):
            SqlCredentialStore(b).save(_enabled())
    finally:
        a.close()
        b.close()


def test_sql_disabled_row_stores_nulls(db_session):
    store = SqlCredentialStore(db_session)
    store.save(Credential.disabled("user-1"))

    row = db_session.execute(select(TwoFactorCredential)).scalar_one()
    assert row.state == "disabled"
    assert row.secret is None
    assert row.pending_secret is None
    assert row.backup_codes == "[]"


def test_sql_pending_round_trip(db_session):
    store = SqlCredentialStore(db_session)
    pending = Credential(
        principal_id="user-2",
        state=CredentialState.PENDING,
        pending_secret=SECRET,
        pending_backup_codes=frozenset({"AAAAAA"}),
    )
    assert store.load("user-2") is None
    saved = store.save(pending)
    assert store.load("user-2") == saved


def test_sql_encrypts_secrets_at_rest(db_session):
    key = os.urandom(32)
    store = SqlCredentialStore(db_session, encryption_key=key)
    store.save(_enabled())

    row = db_session.execute(select(TwoFactorCredential)).scalar_one()
    assert row.secret.startswith("enc:v1:")
    assert SECRET not in row.secret

    assert store.load("user-1").secret == SECRET


def test_sql_encrypted_row_without_key(db_session):
    SqlCredentialStore(db_session, encryption_key=os.urandom(32)).save(_enabled())

    with pytest.raises(ConfigurationError):
        SqlCredentialStore(db_session).load("user-1")


def test_sql_encrypted_row_is_bound_to_principal(db_session):
    key = os.urandom(32)
    store = SqlCredentialStore(db_session, encryption_key=key)
    store.save(_enabled("user-1"))

    row = db_session.execute(select(TwoFactorCredential)).scalar_one()
    stolen = row.secret
    store.save(_enabled("user-2"))
    other = db_session.get(TwoFactorCredential, "user-2")
    other.secret = stolen
    db_session.commit()

    with pytest.raises(ConfigurationError):
        store.load("user-2")


def test_sql_reads_plaintext_rows_with_key_configured(db_session):
    SqlCredentialStore(db_session).save(_enabled())
    assert SqlCredentialStore(db_session, encryption_key=os.urandom(32)).load("user-1").secret == SECRET
