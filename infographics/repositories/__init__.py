"""Data access repositories."""

from .project_repository import ProjectRepository
from .page_repository import PageRepository
from .page_history_repository import PageHistoryRepository

__all__ = [
    "ProjectRepository",
    "PageRepository",
    "PageHistoryRepository",
]
