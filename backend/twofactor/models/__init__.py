# backend/twofactor/models/__init__.py
from .credential import TwoFactorCredential

__all__ = ["TwoFactorCredential"]
