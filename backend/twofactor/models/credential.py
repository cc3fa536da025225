# backend/twofactor/models/credential.py
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from twofactor.db.base import Base


class TwoFactorCredential(Base):
    __tablename__ = "two_factor_credentials"

    principal_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    state: Mapped[str] = mapped_column(String(16), default="disabled", nullable=False)

    # base32, or an enc:v1: envelope when encryption at rest is configured
    secret: Mapped[str | None] = mapped_column(Text, nullable=True)
    pending_secret: Mapped[str | None] = mapped_column(Text, nullable=True)

    # JSON arrays of uppercase codes
    backup_codes: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    pending_backup_codes: Mapped[str] = mapped_column(Text, default="[]", nullable=False)

    last_verified_window: Mapped[int | None] = mapped_column(Integer, nullable=True)

    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
