"""Page history model."""

from sqlalchemy import Column, Index, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from ..database import Base


class PageHistoryEntry(Base):
    """Snapshot of a page's HTML taken right before a feedback regeneration overwrites it.

    Append-only. user_comment is the comment that produced the snapshotted HTML,
    not the feedback that triggered the regeneration.
    """

    __tablename__ = "page_history"
    __table_args__ = (
        Index("ix_page_history_page_created", "page_id", "created_at"),
    )

    id = Column(String(50), primary_key=True)
    page_id = Column(String(50), ForeignKey("pages.id", ondelete="CASCADE"), nullable=False)

    generated_html = Column(Text, nullable=False, default="")
    user_comment = Column(Text, nullable=False, default="")
    requested_by = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)

    page = relationship("Page", back_populates="history")
