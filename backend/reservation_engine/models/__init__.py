"""SQLAlchemy models."""

from reservation_engine.models.field_definition import FieldDefinition, FieldType, FIELD_TYPES
from reservation_engine.models.reservation import (
    Reservation,
    PaymentStatus,
    ReviewStatus,
    PAYMENT_STATUSES,
    REVIEW_STATUSES,
)
from reservation_engine.models.audit import ReservationAudit, AuditAction

__all__ = [
    "FieldDefinition",
    "FieldType",
    "FIELD_TYPES",
    "Reservation",
    "PaymentStatus",
    "ReviewStatus",
    "PAYMENT_STATUSES",
    "REVIEW_STATUSES",
    "ReservationAudit",
    "AuditAction",
]
