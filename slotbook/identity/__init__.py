"""Caller identity and credential resolution."""

from .resolver import (
    CalendarHandle,
    Caller,
    IdentityResolver,
    StaticIdentityResolver,
    StoredCredentialResolver,
)
from .store import CredentialRecord, CredentialStore, FileCredentialStore, MemoryCredentialStore

__all__ = [
    "CalendarHandle",
    "Caller",
    "CredentialRecord",
    "CredentialStore",
    "FileCredentialStore",
    "IdentityResolver",
    "MemoryCredentialStore",
    "StaticIdentityResolver",
    "StoredCredentialResolver",
]
