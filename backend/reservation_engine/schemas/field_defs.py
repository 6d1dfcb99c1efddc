"""Field definition schemas."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FieldDefinitionBase(BaseModel):
    """Attributes shared by create and response payloads."""
    label: str = Field(..., min_length=1, max_length=255)
    type: str = "string"
    required: bool = False
    pattern: Optional[str] = Field(None, max_length=500)
    options: Optional[List[Any]] = None
    default_value: Optional[str] = None
    placeholder: Optional[str] = Field(None, max_length=255)
    help_text: Optional[str] = None
    category: str = Field("general", max_length=100)
    sort_order: int = 0
    is_active: bool = True


class FieldDefinitionCreate(FieldDefinitionBase):
    key: str = Field(..., min_length=1, max_length=100)


class FieldDefinitionUpdate(BaseModel):
    """Partial update; ``key`` is accepted only to reject a rename."""
    key: Optional[str] = None
    label: Optional[str] = Field(None, max_length=255)
    type: Optional[str] = None
    required: Optional[bool] = None
    pattern: Optional[str] = Field(None, max_length=500)
    options: Optional[List[Any]] = None
    default_value: Optional[str] = None
    placeholder: Optional[str] = Field(None, max_length=255)
    help_text: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


class FieldDefinitionResponse(FieldDefinitionBase):
    id: int
    key: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class FieldDefinitionDelete(BaseModel):
    hard_delete: bool = False


class FieldDefinitionImport(BaseModel):
    """Items are validated one by one by the service, so they stay loose here."""
    fields: List[Any] = Field(..., min_length=1, max_length=500)
