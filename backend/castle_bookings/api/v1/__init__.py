"""Versioned API router."""

from fastapi import APIRouter, Depends

from castle_bookings.api import deps

from . import admin_bookings, admin_calendar, availability, bookings, fleet, health, payments

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(availability.router, prefix="/availability", tags=["availability"])
router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])

admin = APIRouter(prefix="/admin", dependencies=[Depends(deps.require_admin)])
admin.include_router(admin_bookings.router, prefix="/bookings", tags=["admin-bookings"])
admin.include_router(payments.router, prefix="/bookings", tags=["payments"])
admin.include_router(admin_calendar.router, prefix="/calendar", tags=["calendar"])
admin.include_router(fleet.router, prefix="/fleet", tags=["fleet"])
router.include_router(admin)
