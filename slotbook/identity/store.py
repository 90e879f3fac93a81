"""Per-caller provider credential storage.

One record per provider user id.  ``FileCredentialStore`` keeps a JSON file
per user for development; anything else (a database, a secrets manager)
plugs in behind ``CredentialStore``.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from google.oauth2.credentials import Credentials
from pydantic import BaseModel, Field

log = logging.getLogger("slotbook.identity.store")

_USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]{1,128}$")


class CredentialRecord(BaseModel):
    """OAuth credentials for one caller, keyed by the provider's user id."""

    user_id: str
    email: Optional[str] = None
    token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_uri: str = "https://oauth2.googleapis.com/token"
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)
    expiry: Optional[datetime] = None
    calendar_id: str = "primary"

    def to_credentials(self) -> Credentials:
        # google-auth compares expiry against naive UTC
        expiry = self.expiry
        if expiry is not None and expiry.tzinfo is not None:
            expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)
        return Credentials(
            token=self.token,
            refresh_token=self.refresh_token,
            token_uri=self.token_uri,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.scopes or None,
            expiry=expiry,
        )

    def with_credentials(self, creds: Credentials) -> CredentialRecord:
        """Copy of this record carrying ``creds``' current token and expiry."""
        return self.model_copy(
            update={
                "token": creds.token,
                "refresh_token": creds.refresh_token or self.refresh_token,
                "expiry": creds.expiry,
            }
        )


def validate_user_id(user_id: str) -> str:
    if not _USER_ID_PATTERN.match(user_id) or user_id in (".", ".."):
        raise ValueError(f"invalid user id: {user_id!r}")
    return user_id


class CredentialStore(ABC):
    @abstractmethod
    def load(self, user_id: str) -> CredentialRecord | None:
        """Return the record for ``user_id`` or None if none is on file."""

    @abstractmethod
    def save(self, record: CredentialRecord) -> None:
        """Create or replace the record for ``record.user_id``."""


class MemoryCredentialStore(CredentialStore):
    """In-process store; lost on restart."""

    def __init__(self, records: list[CredentialRecord] | None = None) -> None:
        self._records = {r.user_id: r for r in records or []}

    def load(self, user_id: str) -> CredentialRecord | None:
        return self._records.get(user_id)

    def save(self, record: CredentialRecord) -> None:
        self._records[record.user_id] = record


class FileCredentialStore(CredentialStore):
    """One ``<user_id>.json`` file per caller under ``directory``."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def _path(self, user_id: str) -> Path:
        return self._directory / f"{validate_user_id(user_id)}.json"

    def load(self, user_id: str) -> CredentialRecord | None:
        try:
            path = self._path(user_id)
        except ValueError:
            log.warning("Rejected credential lookup for unsafe user id %r", user_id)
            return None
        if not path.exists():
            return None
        try:
            return CredentialRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except ValueError:
            log.error("Credential file %s is corrupt; treating as missing", path)
            return None

    def save(self, record: CredentialRecord) -> None:
        path = self._path(record.user_id)
        self._directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(
            json.dumps(record.model_dump(mode="json"), indent=2), encoding="utf-8"
        )
        tmp.replace(path)
        log.info("Saved credentials for user %s", record.user_id)
