"""API routes."""

from .generation import router as generation_router, pages_router

__all__ = [
    "generation_router",
    "pages_router",
]
