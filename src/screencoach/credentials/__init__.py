"""Credential pool and daily quota tracking."""

from screencoach.credentials.pool import (
    CredentialPool,
    detect_provider_kind,
    make_credential,
    parse_credentials,
)
from screencoach.credentials.quota import QuotaGuard

__all__ = [
    "CredentialPool",
    "QuotaGuard",
    "detect_provider_kind",
    "make_credential",
    "parse_credentials",
]
