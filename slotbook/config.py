"""Application configuration via environment variables."""

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings

log = logging.getLogger("slotbook.config")

AUTH_MODES = ("single", "multi")


class Settings(BaseSettings):
    # Google Calendar: single-credential mode uses either a refresh token
    # triple or a service account key file.
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""
    google_service_account_json: str = ""
    google_calendar_id: str = "primary"

    # Reference zone for all-day events and the default display zone
    calendar_timezone: str = "America/New_York"

    # Booking engine
    slot_minutes: int = 5
    horizon_days: int = 14
    agent_id: str = "default"
    send_updates: str = "all"
    serialize_bookings: bool = False

    # Event defaults
    default_summary: str = "Appointment"
    default_location: str = ""
    default_description: str = "Booked via slotbook."
    # Attach a Google Meet link unless the request says otherwise
    create_meet: bool = True

    # Identity: "single" (one fixed credential) or "multi" (per-user files)
    auth_mode: str = "single"
    credential_store_dir: str = ".credentials"

    # Server
    host: str = "127.0.0.1"
    port: int = 4005
    debug: bool = False
    log_level: str = "INFO"
    # Comma-separated browser origins allowed by CORS, "*" for any
    cors_origins: str = "*"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def has_refresh_token(self) -> bool:
        return bool(
            self.google_client_id
            and self.google_client_secret
            and self.google_refresh_token
        )

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []

        if self.auth_mode not in AUTH_MODES:
            raise ValueError(
                f"AUTH_MODE must be one of {', '.join(AUTH_MODES)}, "
                f"got {self.auth_mode!r}."
            )

        try:
            ZoneInfo(self.calendar_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(
                f"CALENDAR_TIMEZONE {self.calendar_timezone!r} is not a valid IANA zone."
            ) from exc

        if self.slot_minutes <= 0:
            raise ValueError("SLOT_MINUTES must be positive.")
        if self.horizon_days <= 0:
            raise ValueError("HORIZON_DAYS must be positive.")

        if self.auth_mode == "single":
            if not (self.has_refresh_token or self.google_service_account_json):
                raise ValueError(
                    "No Google credentials configured. Set GOOGLE_CLIENT_ID, "
                    "GOOGLE_CLIENT_SECRET and GOOGLE_REFRESH_TOKEN, or "
                    "GOOGLE_SERVICE_ACCOUNT_JSON."
                )
            if self.has_refresh_token and self.google_service_account_json:
                warnings.append(
                    "Both a refresh token and a service account are configured; "
                    "the refresh token wins."
                )
        elif self.has_refresh_token or self.google_service_account_json:
            warnings.append(
                "AUTH_MODE=multi ignores the single-credential Google settings."
            )

        if not self.serialize_bookings:
            warnings.append(
                "SERIALIZE_BOOKINGS is off: concurrent bookings for the same "
                "slot can double-book."
            )

        if self.send_updates not in ("all", "externalOnly", "none"):
            warnings.append(
                f"SEND_UPDATES={self.send_updates!r} is not a Google value; "
                "the API will reject inserts."
            )

        return warnings


settings = Settings()
