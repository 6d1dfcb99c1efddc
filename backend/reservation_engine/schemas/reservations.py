"""Reservation request schemas.

Create and update bodies are plain JSON objects (the normalizer accepts loose
human input and the ``_raw_text`` / ``_lock_version`` / ``_reason`` control
keys), so only the small action bodies are modelled here.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class StatusUpdate(BaseModel):
    payment_status: Optional[str] = None
    review_status: Optional[str] = None
    lock_version: Optional[int] = Field(None, ge=1)
    reason: Optional[str] = Field(None, max_length=1000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class DeleteRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)
    hard_delete: bool = False


class RestoreRequest(BaseModel):
    new_status: Literal["pending", "confirmed"] = "pending"
    reason: Optional[str] = Field(None, max_length=1000)
