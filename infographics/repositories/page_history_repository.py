"""Page history repository for database operations."""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from ..models import PageHistoryEntry


class PageHistoryRepository:
    """Append-only access to page HTML snapshots."""

    def __init__(self, db):
        self.db = db

    def append(
        self,
        page_id: str,
        generated_html: str,
        user_comment: str,
        requested_by: Optional[str] = None,
    ) -> PageHistoryEntry:
        """Stage a new snapshot. Caller commits."""
        entry = PageHistoryEntry(
            id=str(uuid.uuid4()),
            page_id=page_id,
            generated_html=generated_html,
            user_comment=user_comment,
            requested_by=requested_by,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def get_by_page(self, page_id: str, limit: int = 50) -> List[PageHistoryEntry]:
        """Get snapshots for a page, newest first."""
        return (
            self.db.query(PageHistoryEntry)
            .filter(PageHistoryEntry.page_id == page_id)
            .order_by(PageHistoryEntry.created_at.desc())
            .limit(limit)
            .all()
        )

    def count_for_page(self, page_id: str) -> int:
        return (
            self.db.query(PageHistoryEntry)
            .filter(PageHistoryEntry.page_id == page_id)
            .count()
        )
