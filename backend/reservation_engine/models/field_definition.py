"""Administrator-defined field catalog for reservation extras."""

from enum import Enum

from sqlalchemy import Column, Integer, String, Text, Boolean, JSON, Index

from reservation_engine.db.base import Base, TimestampMixin


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    EMAIL = "email"
    PHONE = "phone"
    SELECT = "select"
    MULTISELECT = "multiselect"
    TEXTAREA = "textarea"


FIELD_TYPES = [t.value for t in FieldType]


class FieldDefinition(Base, TimestampMixin):
    """One legal extras key: its type, constraints and presentation."""
    __tablename__ = "field_defs"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), nullable=False, unique=True, index=True)
    label = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default=FieldType.STRING.value)
    required = Column(Boolean, nullable=False, default=False)
    pattern = Column(String(500), nullable=True)
    options = Column(JSON, nullable=True)  # allowed values for select/multiselect
    default_value = Column(Text, nullable=True)
    placeholder = Column(String(255), nullable=True)
    help_text = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, default="general")
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    __table_args__ = (
        Index("ix_field_defs_category_sort", "category", "sort_order"),
    )

    def __repr__(self) -> str:
        return f"<FieldDefinition {self.key} ({self.type})>"
