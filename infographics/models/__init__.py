"""Database models."""

from .project import Project
from .page import Page
from .page_history import PageHistoryEntry
from .generation_queue import GenerationQueueItem

__all__ = [
    "Project", "Page", "PageHistoryEntry", "GenerationQueueItem",
]
