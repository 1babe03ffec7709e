"""Project model (an infographic deck)."""

from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class Project(Base):
    """A deck of pages sharing a description and style guidelines."""

    __tablename__ = "projects"

    # Primary key (UUID format)
    id = Column(String(50), primary_key=True)

    name = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    # Free-text style guidelines fed to every page generation
    style_description = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    pages = relationship(
        "Page",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Page.page_order",
    )
