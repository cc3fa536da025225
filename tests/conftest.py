"""Shared fixtures: a frozen clock, a state machine and throwaway stores."""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from twofactor.core.clock import FixedClock
from twofactor.crud.credentials import InMemoryCredentialStore
from twofactor.db.base import Base
from twofactor.security.enrollment import TwoFactorStateMachine

# Middle of a 30s step, so +/- a few seconds never crosses a boundary
NOW = 1_700_000_025

# RFC 6238 test key ("12345678901234567890")
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def machine(clock):
    return TwoFactorStateMachine(clock, issuer="Test Issuer")


@pytest.fixture
def memory_store():
    return InMemoryCredentialStore()


@pytest.fixture
def engine():
    from twofactor import models  # noqa: F401

    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
