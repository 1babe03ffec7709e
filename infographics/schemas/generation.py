"""Generation queue and page history schemas."""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Dict, List, Optional


class GenerateRequest(BaseModel):
    """Request to (re)generate a page's HTML."""
    requested_by: str = Field(..., min_length=1, max_length=255)
    user_comment: str = ""  # Empty means not feedback-driven

    @field_validator('requested_by')
    @classmethod
    def strip_requester(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("requested_by cannot be blank")
        return v

    @field_validator('user_comment')
    @classmethod
    def strip_comment(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "requested_by": "user-42",
                    "user_comment": "Use a timeline instead of bullet points",
                }
            ]
        }
    }


class GenerateResponse(BaseModel):
    """Response after a generation request was accepted."""
    queued: bool = True
    queue_id: str
    status: str
    created: bool  # False when an in-flight request for the page already existed


class StatusRequest(BaseModel):
    """Batch status lookup."""
    page_ids: List[str] = Field(..., max_length=500)


class StatusResponse(BaseModel):
    """Latest queue status per page. Pages never queued are absent."""
    statuses: Dict[str, str]


class QueueItemResponse(BaseModel):
    """Schema for a generation queue item."""
    id: str
    page_id: str
    requested_by: str
    status: str
    user_comment: str = ""
    error_message: Optional[str] = None
    requested_at: datetime
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PageHistoryResponse(BaseModel):
    """Schema for a page history entry."""
    id: str
    page_id: str
    generated_html: str
    user_comment: str
    requested_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProcessOnceResponse(BaseModel):
    """Response after scheduling a single dispatch."""
    status: str
    message: str
