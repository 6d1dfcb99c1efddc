"""API routes."""

from fastapi import APIRouter

from reservation_engine.api.routes import audits, bookings, field_defs

api_router = APIRouter()

# Reservation records, lifecycle and bulk operations
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])

# Extras catalog
api_router.include_router(field_defs.router, prefix="/field-defs", tags=["field-definitions"])

# Audit trail
api_router.include_router(audits.router, prefix="/audits", tags=["audits"])
