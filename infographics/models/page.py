"""Page model."""

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class Page(Base):
    """
    One slide of a project.

    generated_html is either empty or a complete self-contained HTML
    document written by the generation worker.
    """

    __tablename__ = "pages"
    __table_args__ = (
        Index("ix_pages_project_order", "project_id", "page_order"),
    )

    id = Column(String(50), primary_key=True)
    project_id = Column(String(50), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    title = Column(Text, nullable=False)
    content_markdown = Column(Text, nullable=False, default="")

    # Pipeline output
    generated_html = Column(Text, nullable=False, default="")
    # Comment that produced generated_html ("" for a plain generation)
    last_generation_comment = Column(Text, nullable=False, default="")

    # Layout hints such as ["timeline", "dashboard"]
    generation_hints = Column(JSON, default=list)

    page_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="pages")
    history = relationship(
        "PageHistoryEntry",
        back_populates="page",
        cascade="all, delete-orphan",
    )
