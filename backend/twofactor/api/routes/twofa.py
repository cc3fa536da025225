# backend/twofactor/api/routes/twofa.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from twofactor.core.clock import Clock, SystemClock
from twofactor.core.config import settings
from twofactor.core.errors import VerificationFailed
from twofactor.core.security import create_access_token, decode_access_token, get_current_principal
from twofactor.crud.credentials import SqlCredentialStore
from twofactor.crypto.aead import load_key
from twofactor.db.session import get_db
from twofactor.schemas.twofa import (
    TwoFADisableRequest,
    TwoFADisableResponse,
    TwoFALoginVerifyRequest,
    TwoFALoginVerifyResponse,
    TwoFASetupRequest,
    TwoFASetupResponse,
    TwoFAStatusResponse,
    TwoFAVerifyRequest,
    TwoFAVerifyResponse,
)
from twofactor.security.enrollment import CredentialState, TwoFactorStateMachine
from twofactor.security.rate_limit import get_rate_limit_delay, is_rate_limited, record_auth_attempt
from twofactor.security.twofa import render_qr_data_url
from twofactor.services.twofa import TwoFactorService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/2fa", tags=["2fa"])

_system_clock = SystemClock()


def get_clock() -> Clock:
    return _system_clock


def get_twofa_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TwoFactorService:
    store = SqlCredentialStore(db, encryption_key=load_key(settings.secret_encryption_key))
    machine = TwoFactorStateMachine.from_settings(settings, clock)
    return TwoFactorService(store, machine)


def _check_rate_limit(key: str) -> None:
    if is_rate_limited(key):
        delay = get_rate_limit_delay(key)
        logger.warning("2FA attempts throttled for %s (%.0fs left)", key, delay)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many 2FA attempts. Try again in {int(delay)} seconds.",
        )


def _invalid_code() -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid verification code")


@router.post("/setup", response_model=TwoFASetupResponse)
def twofa_setup(
    payload: TwoFASetupRequest | None = None,
    principal_id: str = Depends(get_current_principal),
    service: TwoFactorService = Depends(get_twofa_service),
):
    label = (payload.label if payload else None) or principal_id
    material = service.setup(principal_id, label)
    return TwoFASetupResponse(
        secret=material.secret_base32,
        provisioning_uri=material.provisioning_uri,
        qr_code_url=render_qr_data_url(material.provisioning_uri),
        backup_codes=sorted(material.backup_codes),
        method="TOTP",
    )


@router.post("/verify", response_model=TwoFAVerifyResponse)
def twofa_verify(
    payload: TwoFAVerifyRequest,
    principal_id: str = Depends(get_current_principal),
    service: TwoFactorService = Depends(get_twofa_service),
):
    rate_limit_key = f"2fa_verify_{principal_id}"
    _check_rate_limit(rate_limit_key)

    result = service.verify_setup(principal_id, payload.code)
    if isinstance(result, VerificationFailed):
        record_auth_attempt(rate_limit_key, success=False)
        raise _invalid_code()

    record_auth_attempt(rate_limit_key, success=True)
    return TwoFAVerifyResponse(verified=True, state=result.state.value)


@router.post("/verify-login", response_model=TwoFALoginVerifyResponse)
def twofa_verify_login(
    payload: TwoFALoginVerifyRequest,
    service: TwoFactorService = Depends(get_twofa_service),
):
    data = decode_access_token(payload.mfa_token)
    if not data or not data.get("mfa_pending") or not data.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    principal_id = str(data["sub"])
    rate_limit_key = f"2fa_login_{principal_id}"
    _check_rate_limit(rate_limit_key)

    result = service.verify_login(principal_id, payload.code)
    if not result.verified:
        record_auth_attempt(rate_limit_key, success=False)
        raise _invalid_code()

    record_auth_attempt(rate_limit_key, success=True)
    access_token = create_access_token(subject=principal_id, extra={"mfa": True})
    return TwoFALoginVerifyResponse(
        verified=True,
        used_backup_code=result.used_backup_code,
        backup_codes_remaining=len(result.credential.backup_codes),
        access_token=access_token,
    )


@router.post("/disable", response_model=TwoFADisableResponse)
def twofa_disable(
    payload: TwoFADisableRequest,
    principal_id: str = Depends(get_current_principal),
    service: TwoFactorService = Depends(get_twofa_service),
):
    rate_limit_key = f"2fa_disable_{principal_id}"
    _check_rate_limit(rate_limit_key)

    result = service.disable(principal_id, payload.code)
    if isinstance(result, VerificationFailed):
        record_auth_attempt(rate_limit_key, success=False)
        raise _invalid_code()

    record_auth_attempt(rate_limit_key, success=True)
    return TwoFADisableResponse(disabled=True, state=result.state.value)


@router.get("/status", response_model=TwoFAStatusResponse)
def twofa_status(
    principal_id: str = Depends(get_current_principal),
    service: TwoFactorService = Depends(get_twofa_service),
):
    cred = service.status(principal_id)
    return TwoFAStatusResponse(
        state=cred.state.value,
        enrollment_pending=bool(cred.pending_secret),
        backup_codes_remaining=len(cred.backup_codes) if cred.state is CredentialState.ENABLED else 0,
    )
