"""Bulk operation schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class BulkRequest(BaseModel):
    """One batch: explicit ``ids`` take precedence over ``filters``."""
    action: str
    ids: Optional[List[Any]] = None
    filters: Optional[Dict[str, Any]] = None
    reason: Optional[str] = Field(None, max_length=1000)
    new_status: Optional[str] = None
    export_fields: Optional[List[str]] = None
