"""Error taxonomy shared by the engine and the HTTP layer.

Every failure a caller can observe is one of these.  The API turns them
into ``{"ok": false, "error": <code>, "message": ...}`` payloads.
"""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for all structured slotbook failures."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"ok": False, "error": self.code, "message": self.message}


class ValidationError(SchedulingError):
    """Malformed instant, time zone, or missing field. Raised before any I/O."""

    code = "validation_error"
    status_code = 400


class AuthRequiredError(SchedulingError):
    """No usable provider credentials for the caller."""

    code = "auth_required"
    status_code = 401


class NotFoundError(SchedulingError):
    code = "not_found"
    status_code = 404


class ProviderError(SchedulingError):
    """Any failure reported by the remote calendar.

    ``provider_status`` is the HTTP status the provider returned, or None
    for transport-level failures (DNS, timeouts, token refresh).
    """

    code = "provider_error"

    def __init__(self, message: str, provider_status: int | None = None) -> None:
        super().__init__(message)
        self.provider_status = provider_status

    @property
    def status_code(self) -> int:  # type: ignore[override]
        if self.provider_status is not None and 400 <= self.provider_status < 600:
            return self.provider_status
        return 502

    @property
    def transient(self) -> bool:
        """Rate limits, 5xx and transport failures are worth retrying upstream."""
        if self.provider_status is None:
            return True
        return self.provider_status == 429 or self.provider_status >= 500

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["providerStatus"] = self.provider_status
        payload["transient"] = self.transient
        return payload
