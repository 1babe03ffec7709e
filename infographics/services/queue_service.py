"""Service for managing the page-HTML generation queue."""

import uuid
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import PageNotFoundError, QueueItemNotFoundError
from ..models.generation_queue import (
    GenerationQueueItem,
    PENDING,
    PROCESSING,
    COMPLETED,
    FAILED,
    IN_FLIGHT_STATUSES,
)
from ..repositories.page_repository import PageRepository

logger = logging.getLogger(__name__)

# Failure messages are stored for display; long provider payloads are cut.
MAX_ERROR_MESSAGE_CHARS = 2000

# A claim that loses the race for one candidate moves on to the next oldest.
_CLAIM_ATTEMPTS = 5


class QueueService:
    """
    Manages the lifecycle of generation queue items.

    Items are created by the API, claimed by workers, and tracked
    through pending -> processing -> completed/failed transitions.
    A page never has more than one pending/processing item.
    """

    def __init__(self, db: Session):
        self.db = db

    def enqueue(
        self,
        page_id: str,
        requested_by: str,
        user_comment: Optional[str] = None,
    ) -> Tuple[GenerationQueueItem, bool]:
        """
        Create a generation request, deduplicating by page.

        If a pending or processing item already exists for the page, it is
        returned instead of creating a second one.

        Args:
            page_id: Page whose HTML should be (re)generated
            requested_by: Identity of the requester (attribution only)
            user_comment: Feedback for a regeneration; empty for a plain generation

        Returns:
            (item, created) where created is False for a deduplicated request

        Raises:
            PageNotFoundError: If the page does not exist
        """
        if not PageRepository(self.db).exists(page_id):
            raise PageNotFoundError(page_id)

        existing = self.get_in_flight(page_id)
        if existing:
            logger.info(f"Generation already queued for page {page_id}: {existing.id} ({existing.status})")
            return existing, False

        item = GenerationQueueItem(
            id=str(uuid.uuid4()),
            page_id=page_id,
            requested_by=requested_by,
            status=PENDING,
            user_comment=(user_comment or "").strip(),
            requested_at=datetime.now(timezone.utc),
        )
        self.db.add(item)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a concurrent enqueue for the same page: the unique
            # in-flight index rejected our row.
            self.db.rollback()
            existing = self.get_in_flight(page_id)
            if existing is None:
                raise
            logger.info(f"Concurrent enqueue for page {page_id} resolved to {existing.id}")
            return existing, False

        self.db.refresh(item)
        logger.info(
            f"Enqueued generation {item.id} for page {page_id}",
            extra={"page_id": page_id, "feedback": bool(item.user_comment)},
        )
        return item, True

    def claim_oldest_pending(self) -> Optional[GenerationQueueItem]:
        """
        Claim the oldest pending item for processing.

        The transition is a conditional update on status, so when several
        workers race for the same row only one of them sees a changed row.

        Returns:
            The claimed item (now processing), or None if nothing is pending
        """
        for _ in range(_CLAIM_ATTEMPTS):
            candidate_id = (
                self.db.query(GenerationQueueItem.id)
                .filter(GenerationQueueItem.status == PENDING)
                .order_by(GenerationQueueItem.requested_at.asc(), GenerationQueueItem.id.asc())
                .limit(1)
                .scalar()
            )
            if candidate_id is None:
                return None

            result = self.db.execute(
                update(GenerationQueueItem)
                .where(
                    GenerationQueueItem.id == candidate_id,
                    GenerationQueueItem.status == PENDING,
                )
                .values(status=PROCESSING, processed_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            self.db.commit()

            if result.rowcount == 1:
                item = self.db.get(GenerationQueueItem, candidate_id)
                logger.info(f"Claimed queue item {item.id} for page {item.page_id}")
                return item

            logger.debug(f"Queue item {candidate_id} was claimed by another worker")

        return None

    def mark_completed(self, item_id: str) -> GenerationQueueItem:
        """Mark an item as completed. No-op if it already finished."""
        return self._finish(item_id, COMPLETED, None)

    def mark_failed(self, item_id: str, error_message: str) -> GenerationQueueItem:
        """
        Mark an item as failed with a description of what went wrong.

        No-op if the item already finished. Failed items are not retried;
        a new enqueue is required.
        """
        message = (error_message or "Unknown error")[:MAX_ERROR_MESSAGE_CHARS]
        return self._finish(item_id, FAILED, message)

    def stage_completed(self, item_id: str) -> bool:
        """
        Stage the transition to completed without committing.

        The caller commits it in the same transaction as the page write.
        Returns False if the item had already finished.
        """
        return self._transition(item_id, COMPLETED, None) == 1

    def _transition(self, item_id: str, status: str, error_message: Optional[str]) -> int:
        result = self.db.execute(
            update(GenerationQueueItem)
            .where(
                GenerationQueueItem.id == item_id,
                GenerationQueueItem.status.in_(IN_FLIGHT_STATUSES),
            )
            .values(
                status=status,
                processed_at=datetime.now(timezone.utc),
                error_message=error_message,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _finish(self, item_id: str, status: str, error_message: Optional[str]) -> GenerationQueueItem:
        changed = self._transition(item_id, status, error_message)
        self.db.commit()

        item = self.db.get(GenerationQueueItem, item_id)
        if item is None:
            raise QueueItemNotFoundError(item_id)
        self.db.refresh(item)

        if changed == 0:
            logger.debug(f"Queue item {item_id} already {item.status}; leaving it unchanged")
        elif status == FAILED:
            logger.warning(f"Queue item {item_id} failed: {(error_message or '')[:200]}")
        else:
            logger.info(f"Queue item {item_id} completed successfully")
        return item

    def status_for(self, page_ids: Iterable[str]) -> Dict[str, str]:
        """
        Get the status of each page's most recent request.

        Pages that were never queued are absent from the result.
        """
        ids = list(set(page_ids))
        if not ids:
            return {}

        # Newest request per page; id breaks requested_at ties.
        ranked = (
            self.db.query(
                GenerationQueueItem.page_id.label("page_id"),
                GenerationQueueItem.status.label("status"),
                func.row_number()
                .over(
                    partition_by=GenerationQueueItem.page_id,
                    order_by=(GenerationQueueItem.requested_at.desc(), GenerationQueueItem.id.desc()),
                )
                .label("rank"),
            )
            .filter(GenerationQueueItem.page_id.in_(ids))
            .subquery()
        )
        rows = (
            self.db.query(ranked.c.page_id, ranked.c.status)
            .filter(ranked.c.rank == 1)
            .all()
        )
        return {page_id: status for page_id, status in rows}

    def get_in_flight(self, page_id: str) -> Optional[GenerationQueueItem]:
        """Get the pending or processing item for a page, if any."""
        return (
            self.db.query(GenerationQueueItem)
            .filter(
                GenerationQueueItem.page_id == page_id,
                GenerationQueueItem.status.in_(IN_FLIGHT_STATUSES),
            )
            .first()
        )

    def get_item(self, item_id: str) -> Optional[GenerationQueueItem]:
        """Get a specific queue item by ID."""
        return self.db.get(GenerationQueueItem, item_id)

    def list_for_requester(self, requested_by: str, limit: int = 20) -> List[GenerationQueueItem]:
        """Get recent requests made by one requester, newest first."""
        return (
            self.db.query(GenerationQueueItem)
            .filter(GenerationQueueItem.requested_by == requested_by)
            .order_by(GenerationQueueItem.requested_at.desc())
            .limit(limit)
            .all()
        )

    def list_for_page(self, page_id: str, limit: int = 10) -> List[GenerationQueueItem]:
        """Get recent requests for a page, newest first."""
        return (
            self.db.query(GenerationQueueItem)
            .filter(GenerationQueueItem.page_id == page_id)
            .order_by(GenerationQueueItem.requested_at.desc())
            .limit(limit)
            .all()
        )

    def list_recent(self, limit: int = 20) -> List[GenerationQueueItem]:
        """Get recent requests across all pages, newest first."""
        return (
            self.db.query(GenerationQueueItem)
            .order_by(GenerationQueueItem.requested_at.desc())
            .limit(limit)
            .all()
        )

    def count_in_flight(self) -> int:
        """Number of pending or processing items (queue depth)."""
        return (
            self.db.query(GenerationQueueItem)
            .filter(GenerationQueueItem.status.in_(IN_FLIGHT_STATUSES))
            .count()
        )
