"""Append-only audit trail for reservation mutations."""

from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Index

from reservation_engine.db.base import Base, utcnow


class AuditAction:
    CREATE = "create"
    UPDATE = "update"
    CANCEL = "cancel"
    DELETE = "delete"
    RESTORE = "restore"
    BULK_CANCEL = "bulk_cancel"
    BULK_UPDATE = "bulk_update"
    BULK_DELETE = "bulk_delete"


class ReservationAudit(Base):
    """One row per reservation mutation.

    ``booking_id`` is not a foreign key so history survives
    a hard delete of the reservation it describes.
    """
    __tablename__ = "reservation_audits"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, nullable=False, index=True)
    actor = Column(String(100), nullable=False, default="system", index=True)
    action = Column(String(50), nullable=False, index=True)

    # {"field": {"old": ..., "new": ...}}, extras keys as "extras.<key>"
    diff = Column(JSON, nullable=True)
    previous_values = Column(JSON, nullable=True)
    current_values = Column(JSON, nullable=True)

    reason = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    request_id = Column(String(150), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index("ix_reservation_audits_booking_created", "booking_id", "created_at"),
        Index("ix_reservation_audits_actor_created", "actor", "created_at"),
    )
