"""Pydantic schemas for API validation."""

from .generation import (
    GenerateRequest,
    GenerateResponse,
    StatusRequest,
    StatusResponse,
    QueueItemResponse,
    PageHistoryResponse,
    ProcessOnceResponse,
)

__all__ = [
    "GenerateRequest",
    "GenerateResponse",
    "StatusRequest",
    "StatusResponse",
    "QueueItemResponse",
    "PageHistoryResponse",
    "ProcessOnceResponse",
]
