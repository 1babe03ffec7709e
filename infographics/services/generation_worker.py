"""Generation worker: processes one claimed queue item end to end.

Sequence for a claimed item:
    1. load page and project
    2. snapshot the current HTML into page history (feedback regenerations only)
    3. generate candidate HTML
    4. validate/repair until clean, stalled or out of rounds
    5. write the final HTML and its comment onto the page and mark the item
       completed, both in one commit

Any exception in 1, 3, 4 or 5 marks the item failed with the captured message.
A failed run never touches the page's HTML.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.llm import LLMClient
from ..core.logging_config import bind_queue_item
from ..exceptions import InfographicsException, PersistenceError, QueueItemNotFoundError
from ..models.generation_queue import GenerationQueueItem, COMPLETED, FAILED
from ..models import Page
from ..repositories import PageHistoryRepository, PageRepository, ProjectRepository
from .generation_client import GenerationClient, GenerationContext
from .html_validator import HtmlValidator
from .prompts import INITIAL_GENERATION_COMMENT
from .queue_service import QueueService
from .repair_agent import RepairAgent
from .repair_loop import Repairer, Validator, validate_and_repair

logger = logging.getLogger(__name__)


def describe_error(exc: BaseException) -> str:
    """Message stored on a failed queue item."""
    if isinstance(exc, InfographicsException):
        return exc.message
    return str(exc) or type(exc).__name__


class GenerationWorker:
    """
    Drives the generate -> validate/repair -> persist cycle for queue items.

    All collaborators are passed in; nothing is looked up globally, so tests
    can hand in stubs and call process_next()/process_item() directly.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        generation_client: GenerationClient,
        validator: Validator,
        repair_agent: Repairer,
        max_iterations: int = 5,
    ):
        self.session_factory = session_factory
        self.generation_client = generation_client
        self.validator = validator
        self.repair_agent = repair_agent
        self.max_iterations = max_iterations

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: Callable[[], Session],
        llm: Optional[LLMClient] = None,
    ) -> "GenerationWorker":
        """Wire the production pipeline. Raises ConfigurationError without an API key."""
        llm = llm or LLMClient.from_settings(settings)
        return cls(
            session_factory=session_factory,
            generation_client=GenerationClient(
                llm,
                model=settings.generation_model,
                footer_attribution=settings.footer_attribution,
                max_tokens=settings.generation_max_tokens,
            ),
            validator=HtmlValidator.from_settings(settings),
            repair_agent=RepairAgent(
                llm,
                model=settings.get_repair_model(),
                error_budget=settings.repair_error_budget,
                max_tokens=settings.repair_max_tokens,
            ),
            max_iterations=settings.max_html_fix_iter,
        )

    async def process_next(self) -> Optional[GenerationQueueItem]:
        """Claim the oldest pending item and process it.

        Returns:
            The claimed item (detached, as it was when claimed), or None if
            the queue had nothing pending.
        """
        db = self.session_factory()
        try:
            item = QueueService(db).claim_oldest_pending()
        finally:
            db.close()

        if item is None:
            return None

        await self.process_item(item.id)
        return item

    async def process_item(self, item_id: str) -> str:
        """Run steps 1-5 for an already-claimed item.

        Returns:
            The item's final status, "completed" or "failed".
        """
        db = self.session_factory()
        queue = QueueService(db)
        with bind_queue_item(item_id):
            try:
                item = queue.get_item(item_id)
                if item is None:
                    raise QueueItemNotFoundError(item_id)
                user_comment = item.user_comment or ""

                page = PageRepository(db).get_by_id(item.page_id)
                project = ProjectRepository(db).get_by_id(page.project_id)
                context = GenerationContext.for_page(project, page, user_comment)

                if page.generated_html and user_comment:
                    self._snapshot_history(db, page, item.requested_by)
                page_id = page.id
                # Nothing stays open in the database while the model works.
                db.commit()

                html = await self.generation_client.generate(context)
                outcome = await validate_and_repair(
                    html, self.validator, self.repair_agent, self.max_iterations
                )
                logger.info(
                    f"Validate/repair finished: {outcome.status.value}",
                    extra={
                        "validation_rounds": outcome.validation_rounds,
                        "repair_rounds": outcome.repair_rounds,
                        "remaining_errors": len(outcome.remaining_errors),
                    },
                )

                self._complete(queue, item_id, page_id, outcome.html, user_comment)
                return COMPLETED

            except Exception as e:
                logger.error(f"Queue item {item_id} failed: {describe_error(e)}")
                db.rollback()
                try:
                    queue.mark_failed(item_id, describe_error(e))
                except (SQLAlchemyError, InfographicsException):
                    logger.exception(f"Could not record failure for queue item {item_id}")
                return FAILED
            finally:
                db.close()

    def _snapshot_history(self, db: Session, page: Page, requested_by: Optional[str]) -> None:
        """Save the HTML about to be replaced, labelled with the comment that produced it.

        Non-critical: a failure is logged and generation continues.
        """
        try:
            PageHistoryRepository(db).append(
                page_id=page.id,
                generated_html=page.generated_html,
                user_comment=page.last_generation_comment or INITIAL_GENERATION_COMMENT,
                requested_by=requested_by,
            )
            db.commit()
            logger.info(f"Saved current HTML of page {page.id} to history before regeneration")
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to save page history (non-fatal): {e}")

    def _complete(self, queue: QueueService, item_id: str, page_id: str, html: str, comment: str) -> None:
        """Write HTML and comment onto the page and mark the item completed in one commit.

        Either the page holds the new HTML and the item is completed, or
        neither changed.
        """
        db = queue.db
        try:
            repo = PageRepository(db)
            repo.update_generated_html(repo.get_by_id(page_id), html, comment)
            if not queue.stage_completed(item_id):
                raise PersistenceError(f"Queue item {item_id} is no longer in flight")
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Failed to save generation result: {e}", original_error=e) from e
        logger.info(f"Saved {len(html)} chars of HTML to page {page_id}; queue item {item_id} completed")
