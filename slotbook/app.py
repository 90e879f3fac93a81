"""FastAPI application: HTTP endpoints for slot availability and booking.

Endpoints:

  GET  /health                     Health check
  GET  /v1/availability/soonest    Earliest free slot at or after ?from=
  PUT  /v1/meetings                Book at-or-after a requested instant
  POST /v1/meetings/reschedule     Move an existing booking

In multi-tenant mode the caller is identified by the ``uid`` cookie set by
the sign-in flow; in single mode every request uses the configured
calendar.
"""

from __future__ import annotations

# Load .env before Settings is read
from dotenv import load_dotenv
load_dotenv()

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slotbook.calendar_providers.google import GoogleCalendarProvider
from slotbook.config import Settings, settings as default_settings
from slotbook.engine import (
    AvailabilityService,
    BookingLocks,
    BookingOptions,
    BookingResult,
    parse_instant,
    resolve_zone,
    to_iso,
)
from slotbook.errors import SchedulingError, ValidationError
from slotbook.identity import (
    CalendarHandle,
    Caller,
    FileCredentialStore,
    IdentityResolver,
    StaticIdentityResolver,
    StoredCredentialResolver,
)
from slotbook.models import BookingRequest, BookingResponse, RescheduleRequest, SoonestResponse

logging.basicConfig(
    level=default_settings.log_level.upper(),
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

log = logging.getLogger("slotbook.app")

_START_TIME = time.time()

CALLER_COOKIE = "uid"


def build_resolver(settings: Settings) -> IdentityResolver:
    """Identity resolver for the configured auth mode."""
    if settings.auth_mode == "multi":
        return StoredCredentialResolver(
            FileCredentialStore(settings.credential_store_dir),
            GoogleCalendarProvider.from_credentials,
            default_calendar_id=settings.google_calendar_id,
        )

    if settings.has_refresh_token:
        provider = GoogleCalendarProvider.from_refresh_token(
            settings.google_client_id,
            settings.google_client_secret,
            settings.google_refresh_token,
        )
    else:
        provider = GoogleCalendarProvider.from_service_account_file(
            settings.google_service_account_json
        )
    return StaticIdentityResolver(
        CalendarHandle(provider=provider, calendar_id=settings.google_calendar_id)
    )


def create_app(
    settings: Settings | None = None,
    resolver: IdentityResolver | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``resolver`` overrides the credential wiring (tests pass one backed by
    an in-memory calendar).  Without it the resolver is built from
    ``settings`` on first use.
    """
    settings = settings or default_settings
    locks = BookingLocks() if settings.serialize_bookings else None
    try:
        reference_zone = resolve_zone(settings.calendar_timezone)
    except ValidationError as exc:
        raise ValueError(
            f"CALENDAR_TIMEZONE {settings.calendar_timezone!r} is not a valid IANA zone."
        ) from exc

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.resolver is None:
            for warning in settings.validate_startup():
                log.warning(warning)
        yield

    app = FastAPI(
        title="slotbook",
        description="Books quantized appointment slots on Google Calendar",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.resolver = resolver

    # Browser front ends call these endpoints directly
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "PUT", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    def _resolver() -> IdentityResolver:
        if app.state.resolver is None:
            app.state.resolver = build_resolver(settings)
        return app.state.resolver

    async def _service_for(request: Request) -> AvailabilityService:
        caller = Caller(user_id=request.cookies.get(CALLER_COOKIE))
        handle = await _resolver().resolve_handle(caller)
        return AvailabilityService(
            handle,
            granularity_minutes=settings.slot_minutes,
            horizon_days=settings.horizon_days,
            reference_zone=reference_zone,
            agent_id=settings.agent_id,
            send_updates=settings.send_updates,
            locks=locks,
        )

    def _options(body: BookingRequest) -> BookingOptions:
        return BookingOptions(
            timezone=body.tz or settings.calendar_timezone,
            summary=body.summary or settings.default_summary,
            caller_email=body.email,
            label=body.label,
            location=body.location if body.location is not None else settings.default_location,
            description=(
                body.description if body.description is not None else settings.default_description
            ),
            create_meet=body.create_meet if body.create_meet is not None else settings.create_meet,
            external_key=body.external_key,
        )

    def _booking_response(result: BookingResult) -> BookingResponse:
        return BookingResponse(
            scheduled_start_iso=to_iso(result.chosen_instant),
            scheduled_end_iso=to_iso(result.end_instant),
            bumped_from_requested=result.was_bumped,
            event_id=result.event_id,
            external_link=result.html_link,
            meet_link=result.meet_link,
            slot_minutes=settings.slot_minutes,
            replayed=result.replayed,
        )

    # ── Error mapping ──────────────────────────────────────────

    @app.exception_handler(SchedulingError)
    async def scheduling_error(request: Request, exc: SchedulingError) -> JSONResponse:
        log.warning("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_invalid(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
            for err in exc.errors()
        )
        return JSONResponse(
            {"ok": False, "error": "validation_error", "message": problems},
            status_code=400,
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        log.error("%s %s crashed", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            {"ok": False, "error": "internal_error", "message": "unexpected server error"},
            status_code=500,
        )

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse(
            {
                "status": "ok",
                "uptime": uptime,
                "tz": settings.calendar_timezone,
                "calendarId": settings.google_calendar_id,
                "slotMinutes": settings.slot_minutes,
            }
        )

    # ── Availability ───────────────────────────────────────────

    @app.get("/v1/availability/soonest", response_model=SoonestResponse)
    async def soonest(
        request: Request,
        from_: Optional[str] = Query(default=None, alias="from"),
    ) -> SoonestResponse:
        """Earliest free slot at or after ``from`` (default: now)."""
        from_instant = parse_instant(from_, reference_zone) if from_ else None

        service = await _service_for(request)
        slot = await service.soonest(from_instant)
        return SoonestResponse(
            start_iso=to_iso(slot.start),
            end_iso=to_iso(slot.end),
            slot_minutes=settings.slot_minutes,
            calendar_id=service.calendar_id,
        )

    # ── Booking ────────────────────────────────────────────────

    @app.put("/v1/meetings", response_model=BookingResponse)
    async def book(request: Request, body: BookingRequest) -> BookingResponse:
        """Book the requested slot, or the next free one if it is taken."""
        options = _options(body)
        requested = parse_instant(body.requested_start_iso, resolve_zone(options.timezone))

        service = await _service_for(request)
        result = await service.book(requested, options)
        return _booking_response(result)

    @app.post("/v1/meetings/reschedule", response_model=BookingResponse)
    async def reschedule(request: Request, body: RescheduleRequest) -> BookingResponse:
        """Create the new booking first, then delete the old one."""
        options = _options(body)
        requested = parse_instant(body.requested_start_iso, resolve_zone(options.timezone))
        if not body.event_id and not body.email:
            raise ValidationError("either eventId or email is required to reschedule")

        service = await _service_for(request)
        result = await service.reschedule(requested, options, event_id=body.event_id)
        return _booking_response(result)

    return app


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "slotbook.app:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        log_config=log_config,
    )
