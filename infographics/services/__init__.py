"""Business logic services."""

from .queue_service import QueueService
from .generation_client import GenerationClient, GenerationContext
from .html_validator import HtmlValidator, ValidationMessage
from .repair_agent import RepairAgent
from .repair_loop import RepairOutcome, RepairStatus, validate_and_repair
from .generation_worker import GenerationWorker

__all__ = [
    "QueueService",
    "GenerationClient",
    "GenerationContext",
    "HtmlValidator",
    "ValidationMessage",
    "RepairAgent",
    "RepairOutcome",
    "RepairStatus",
    "validate_and_repair",
    "GenerationWorker",
]
