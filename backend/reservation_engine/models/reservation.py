"""Reservation record model: fixed columns plus an open ``extras`` bag."""

from enum import Enum

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Text, Boolean, Numeric, JSON, Index, text,
)

from reservation_engine.db.base import Base, TimestampMixin, SoftDeleteMixin


class PaymentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    NEEDS_REVIEW = "needs_review"
    REVIEWED = "reviewed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


PAYMENT_STATUSES = [s.value for s in PaymentStatus]
REVIEW_STATUSES = [s.value for s in ReviewStatus]

# Review states in which operators may still edit a record
EDITABLE_REVIEW_STATUSES = {"pending", "needs_review", "reviewed"}

MONEY_FIELDS = ("total_amount", "adult_unit_price", "child_unit_price")
COUNT_FIELDS = ("quantity", "guest_count", "people_adult", "people_child", "people_infant")

# Writable fixed attributes, in column order
CORE_FIELDS = (
    "reservation_number", "confirmation_number", "channel", "platform_name",
    "product_name", "package_type",
    "total_amount", "adult_unit_price", "child_unit_price",
    "quantity", "guest_count", "people_adult", "people_child", "people_infant",
    "korean_name", "english_first_name", "english_last_name", "email", "phone", "kakao_id",
    "usage_date", "usage_time", "reservation_datetime",
    "payment_status", "review_status", "code_issued", "memo",
)


class Reservation(Base, TimestampMixin, SoftDeleteMixin):
    """A bookable reservation.

    ``extras`` holds values for administrator-defined fields (see
    FieldDefinition). ``flags`` is recomputed on every write and
    ``lock_version`` is bumped by exactly one per successful write.
    """
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)

    # Business identifiers
    reservation_number = Column(String(100), nullable=False, index=True)
    confirmation_number = Column(String(100), nullable=True)
    channel = Column(String(50), nullable=False, default="웹")
    platform_name = Column(String(50), nullable=True, index=True)

    # Product
    product_name = Column(String(255), nullable=True)
    package_type = Column(String(100), nullable=True)

    # Money
    total_amount = Column(Numeric(12, 2), nullable=True)
    adult_unit_price = Column(Numeric(12, 2), nullable=True)
    child_unit_price = Column(Numeric(12, 2), nullable=True)

    # Headcounts
    quantity = Column(Integer, nullable=False, default=1)
    guest_count = Column(Integer, nullable=False, default=1)
    people_adult = Column(Integer, nullable=False, default=1)
    people_child = Column(Integer, nullable=False, default=0)
    people_infant = Column(Integer, nullable=False, default=0)

    # Guest
    korean_name = Column(String(100), nullable=True)
    english_first_name = Column(String(50), nullable=True)
    english_last_name = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    kakao_id = Column(String(100), nullable=True)

    # Scheduling
    usage_date = Column(Date, nullable=True, index=True)
    usage_time = Column(String(5), nullable=True)  # HH:MM
    reservation_datetime = Column(DateTime, nullable=True)

    # Status
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    review_status = Column(String(20), nullable=False, default=ReviewStatus.NEEDS_REVIEW.value, index=True)
    code_issued = Column(Boolean, nullable=False, default=False)
    memo = Column(Text, nullable=True)

    # Dynamic attributes and quality metadata
    extras = Column(JSON, nullable=False, default=dict)
    flags = Column(JSON, nullable=False, default=lambda: {"missing": [], "ambiguous": []})

    lock_version = Column(Integer, nullable=False, default=1, server_default="1")
    origin_hash = Column(String(64), nullable=True, index=True)

    __table_args__ = (
        # (reservation_number, channel) is unique among live rows only
        Index(
            "uq_reservations_number_channel_live",
            "reservation_number",
            "channel",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
        Index("ix_reservations_created_at", "created_at"),
    )
