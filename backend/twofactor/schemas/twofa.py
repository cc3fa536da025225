# backend/twofactor/schemas/twofa.py
from pydantic import BaseModel, ConfigDict, Field, field_validator


class _CodeIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # TOTP digits or a backup code
    code: str = Field(min_length=1, max_length=16)

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Code cannot be empty")
        return v


class TwoFASetupRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Shown in the authenticator app; defaults to the principal id
    label: str | None = Field(default=None, max_length=255)

    @field_validator("label")
    @classmethod
    def strip_label(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class TwoFASetupResponse(BaseModel):
    secret: str
    provisioning_uri: str
    qr_code_url: str
    backup_codes: list[str]
    method: str = "TOTP"


class TwoFAVerifyRequest(_CodeIn):
    pass


class TwoFAVerifyResponse(BaseModel):
    verified: bool
    state: str


class TwoFALoginVerifyRequest(_CodeIn):
    mfa_token: str


class TwoFALoginVerifyResponse(BaseModel):
    verified: bool
    used_backup_code: bool
    backup_codes_remaining: int
    access_token: str


class TwoFADisableRequest(_CodeIn):
    pass


class TwoFADisableResponse(BaseModel):
    disabled: bool
    state: str


class TwoFAStatusResponse(BaseModel):
    state: str
    enrollment_pending: bool
    backup_codes_remaining: int
