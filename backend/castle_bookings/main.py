"""FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from secure import Secure

from castle_bookings.api import api_router
from castle_bookings.core.config import get_settings
from castle_bookings.core.settings import get_booking_rules
from castle_bookings.db.session import get_sessionmaker
from castle_bookings.integrations.google_calendar import build_calendar_client
from castle_bookings.security.logging_filters import SensitiveFilter
from castle_bookings.services.scheduler import BookingScheduler, default_jobs

logger = logging.getLogger(__name__)

settings = get_settings()

_ALLOWED_ORIGINS = [origin for origin in settings.cors_allow_origins if origin]
if not _ALLOWED_ORIGINS:
    _ALLOWED_ORIGINS = ["http://localhost:5173"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    calendar = build_calendar_client()
    app.state.calendar = calendar
    scheduler: BookingScheduler | None = None
    if settings.scheduler_enabled:
        scheduler = BookingScheduler(
            get_sessionmaker(),
            default_jobs(settings, rules=get_booking_rules(), calendar=calendar),
        )
        scheduler.start()
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()
        try:
            await calendar.aclose()
        except Exception:  # pragma: no cover - shutdown is best effort
            logger.exception("Failed to close calendar client")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Admin-Token", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(CorrelationIdMiddleware, header_name="X-Request-ID")

_secure_headers = Secure.with_default_headers()


@app.middleware("http")
async def _apply_security_headers(request, call_next):
    response = await call_next(request)
    _secure_headers.set_headers(response)
    return response


for _logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error", ""):
    _logger = logging.getLogger(_logger_name)
    if not any(isinstance(flt, SensitiveFilter) for flt in _logger.filters):
        _logger.addFilter(SensitiveFilter())

app.include_router(api_router)


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": "Castle Bookings API"}
