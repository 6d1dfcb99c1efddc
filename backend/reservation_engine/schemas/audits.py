"""Audit search schemas."""

from typing import List, Optional

from pydantic import BaseModel, Field


class AuditSearchRequest(BaseModel):
    booking_ids: Optional[List[int]] = None
    actors: Optional[List[str]] = None
    actions: Optional[List[str]] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    search_term: Optional[str] = Field(None, max_length=200)
    page: int = Field(1, ge=1)
    page_size: Optional[int] = Field(None, ge=1)
