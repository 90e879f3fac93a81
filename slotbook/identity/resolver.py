"""Resolve a caller identity to a ready-to-use calendar handle."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from slotbook.calendar_providers.base import CalendarProvider
from slotbook.errors import AuthRequiredError, ProviderError

from .store import CredentialStore

log = logging.getLogger("slotbook.identity.resolver")

ProviderFactory = Callable[[Credentials], CalendarProvider]


@dataclass(frozen=True)
class Caller:
    """Opaque caller identity as seen by the request layer."""

    user_id: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class CalendarHandle:
    """A provider bound to one calendar.

    ``owner`` names the account the credentials belong to; bookings are
    serialized per owner and calendar.
    """

    provider: CalendarProvider
    calendar_id: str
    email: Optional[str] = None
    owner: Optional[str] = None


class IdentityResolver(ABC):
    @abstractmethod
    async def resolve_handle(self, caller: Caller) -> CalendarHandle:
        """Return the calendar handle for ``caller``.

        Raises:
            AuthRequiredError: no usable credentials are on file.
        """


class StaticIdentityResolver(IdentityResolver):
    """Single-credential deployments: every caller shares one calendar."""

    def __init__(self, handle: CalendarHandle) -> None:
        self._handle = handle

    async def resolve_handle(self, caller: Caller) -> CalendarHandle:
        return self._handle


class StoredCredentialResolver(IdentityResolver):
    """Multi-tenant deployments: per-user OAuth credentials from a store.

    Expired access tokens are refreshed up front and written back, so the
    store always holds the latest token.
    """

    def __init__(
        self,
        store: CredentialStore,
        provider_factory: ProviderFactory,
        default_calendar_id: str = "primary",
    ) -> None:
        self._store = store
        self._provider_factory = provider_factory
        self._default_calendar_id = default_calendar_id

    async def resolve_handle(self, caller: Caller) -> CalendarHandle:
        if not caller.user_id:
            raise AuthRequiredError("sign in to connect a calendar")
        loop = asyncio.get_running_loop()
        record = await loop.run_in_executor(None, self._store.load, caller.user_id)
        if record is None:
            raise AuthRequiredError(f"no calendar credentials on file for {caller.user_id}")

        creds = record.to_credentials()
        if not creds.valid:
            if not creds.refresh_token:
                raise AuthRequiredError("stored credentials expired and cannot be refreshed")
            await self._refresh(creds)
            record = record.with_credentials(creds)
            await loop.run_in_executor(None, self._store.save, record)
            log.info("Refreshed access token for user %s", record.user_id)

        return CalendarHandle(
            provider=self._provider_factory(creds),
            calendar_id=record.calendar_id or self._default_calendar_id,
            email=record.email or caller.email,
            owner=record.user_id,
        )

    @staticmethod
    async def _refresh(creds: Credentials) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, creds.refresh, Request())
        except RefreshError as exc:
            raise AuthRequiredError(f"credential refresh rejected: {exc}") from exc
        except TransportError as exc:
            raise ProviderError(f"credential refresh failed: {exc}") from exc
