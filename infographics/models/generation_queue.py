"""Generation queue model for page-HTML generation requests."""

from sqlalchemy import Column, ForeignKey, Index, String, Text, DateTime, text
from ..database import Base

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

IN_FLIGHT_STATUSES = (PENDING, PROCESSING)

_IN_FLIGHT_WHERE = text("status IN ('pending', 'processing')")


class GenerationQueueItem(Base):
    """
    One durable request to (re)generate a page's HTML.

    Status transitions: pending -> processing -> completed | failed
    Only the generation worker moves an item out of pending. Rows are kept
    after they finish.
    """

    __tablename__ = "generation_queue"
    __table_args__ = (
        Index("ix_generation_queue_status_requested_at", "status", "requested_at"),
        Index("ix_generation_queue_page_id", "page_id"),
        Index("ix_generation_queue_requested_by", "requested_by"),
        # At most one in-flight request per page, enforced by the database.
        Index(
            "uq_generation_queue_page_in_flight",
            "page_id",
            unique=True,
            sqlite_where=_IN_FLIGHT_WHERE,
            postgresql_where=_IN_FLIGHT_WHERE,
        ),
    )

    # Primary key (UUID format)
    id = Column(String(50), primary_key=True)

    page_id = Column(String(50), ForeignKey("pages.id", ondelete="CASCADE"), nullable=False)

    # Who asked (attribution only)
    requested_by = Column(String(255), nullable=False)

    # Allowed values: pending, processing, completed, failed
    status = Column(String(20), nullable=False, default=PENDING)

    # Feedback driving a regeneration; "" for a plain generation
    user_comment = Column(Text, nullable=False, default="")

    error_message = Column(Text, nullable=True)

    # Set in Python (microsecond precision) so FIFO order is strict
    requested_at = Column(DateTime(timezone=True), nullable=False)
    # Stamped on every transition out of pending
    processed_at = Column(DateTime(timezone=True), nullable=True)
