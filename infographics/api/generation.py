"""Page generation endpoints: enqueue, status, queue inspection, history."""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ..core.config import settings
from ..database import SessionLocal, get_db
from ..exceptions import GenerationUnavailableError, PageNotFoundError, QueueItemNotFoundError
from ..repositories import PageHistoryRepository, PageRepository
from ..schemas.generation import (
    GenerateRequest,
    GenerateResponse,
    PageHistoryResponse,
    ProcessOnceResponse,
    QueueItemResponse,
    StatusRequest,
    StatusResponse,
)
from ..services.generation_worker import GenerationWorker
from ..services.queue_service import QueueService

logger = logging.getLogger(__name__)

pages_router = APIRouter(prefix="/api/pages", tags=["generation"])
router = APIRouter(prefix="/api/generation", tags=["generation"])


def get_generation_worker() -> GenerationWorker:
    """Build a worker for on-demand dispatch. 503 when no provider is configured."""
    if not settings.is_llm_configured():
        raise GenerationUnavailableError()
    return GenerationWorker.from_settings(settings, SessionLocal)


@pages_router.post("/{page_id}/generate", response_model=GenerateResponse, status_code=202)
def request_generation(
    page_id: str,
    request: GenerateRequest,
    db: Session = Depends(get_db),
):
    """Queue HTML (re)generation for a page.

    A non-empty user_comment makes this a feedback regeneration: the
    current HTML is kept in page history and the model is asked to revise it.
    If the page already has a pending or processing request, that request is
    returned with created=false.
    """
    item, created = QueueService(db).enqueue(
        page_id=page_id,
        requested_by=request.requested_by,
        user_comment=request.user_comment,
    )
    return GenerateResponse(queue_id=item.id, status=item.status, created=created)


@pages_router.get("/{page_id}/history", response_model=List[PageHistoryResponse])
def get_page_history(
    page_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Previous HTML versions of a page, newest first."""
    if not PageRepository(db).exists(page_id):
        raise PageNotFoundError(page_id)
    return PageHistoryRepository(db).get_by_page(page_id, limit)


@router.post("/status", response_model=StatusResponse)
def get_generation_status(
    request: StatusRequest,
    db: Session = Depends(get_db),
):
    """Latest queue status for each page. Pages never queued are omitted."""
    return StatusResponse(statuses=QueueService(db).status_for(request.page_ids))


@router.get("/queue", response_model=List[QueueItemResponse])
def list_queue_items(
    requested_by: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """List queue items newest first, optionally filtered by requester."""
    service = QueueService(db)
    if requested_by:
        return service.list_for_requester(requested_by, limit)
    return service.list_recent(limit)


@router.get("/queue/{queue_id}", response_model=QueueItemResponse)
def get_queue_item(
    queue_id: str,
    db: Session = Depends(get_db),
):
    """Get a single queue item by ID."""
    item = QueueService(db).get_item(queue_id)
    if not item:
        raise QueueItemNotFoundError(queue_id)
    return item


async def _dispatch_once(worker: GenerationWorker) -> None:
    item = await worker.process_next()
    if item is None:
        logger.info("On-demand dispatch found no pending items")


@router.post("/process-once", response_model=ProcessOnceResponse, status_code=202)
def process_once(
    background_tasks: BackgroundTasks,
    worker: GenerationWorker = Depends(get_generation_worker),
):
    """Claim and process the oldest pending item in the background.

    For deployments without a long-running worker process.
    """
    background_tasks.add_task(_dispatch_once, worker)
    return ProcessOnceResponse(status="scheduled", message="One queue item will be processed")
