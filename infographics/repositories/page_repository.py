"""Page repository for database operations."""

import uuid
from typing import List, Optional

from ..models import Page
from ..exceptions import PageNotFoundError


class PageRepository:
    """Repository for page reads and the pipeline's final HTML write."""

    def __init__(self, db):
        self.db = db

    def get_by_id(self, page_id: str) -> Page:
        """Page targeted by a queue item. Raises PageNotFoundError if missing."""
        page = self.db.get(Page, page_id)
        if page is None:
            raise PageNotFoundError(page_id)
        return page

    def create(
        self,
        project_id: str,
        title: str,
        content_markdown: str = "",
        page_order: int = 0,
        generation_hints: Optional[List[str]] = None,
    ) -> Page:
        """Create a new page with empty generated HTML."""
        page = Page(
            id=str(uuid.uuid4()),
            project_id=project_id,
            title=title,
            content_markdown=content_markdown,
            generated_html="",
            last_generation_comment="",
            generation_hints=generation_hints or [],
            page_order=page_order,
        )
        self.db.add(page)
        self.db.flush()
        return page

    def exists(self, page_id: str) -> bool:
        return self.db.query(Page.id).filter(Page.id == page_id).first() is not None

    def update_generated_html(self, page: Page, html: str, comment: str) -> Page:
        """Stage the final HTML and the comment that produced it. Caller commits."""
        page.generated_html = html
        page.last_generation_comment = comment
        self.db.flush()
        return page
