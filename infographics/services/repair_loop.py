"""Validate-repair loop.

Alternates validation and targeted repair until the document is clean, the
repair model stops making progress, or the round budget runs out:

    Validating(html) --no blocking errors--> done (valid)
    Validating(html) --errors-------------> Repairing(html, errors)
    Repairing        --same html----------> done (stalled)
    Repairing        --new html-----------> Validating(new html)
    N repairs without a clean validation -> done (exhausted)

The loop never raises. Whatever happens it hands back the latest HTML and
leaves accept/reject to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from ..exceptions import GenerationError
from .html_validator import ValidationMessage, blocking

logger = logging.getLogger(__name__)


class RepairStatus(str, Enum):
    VALID = "valid"
    STALLED = "stalled"
    EXHAUSTED = "exhausted"
    REPAIR_FAILED = "repair_failed"


class Validator(Protocol):
    async def validate(self, html: str) -> list[ValidationMessage]: ...


class Repairer(Protocol):
    async def repair(self, html: str, errors: list[ValidationMessage]) -> str: ...


@dataclass
class RepairOutcome:
    """Final HTML of the loop and how it ended.

    remaining_errors are the blocking messages of the last validation round.
    For EXHAUSTED that round saw the HTML before the final repair, and the
    repaired ``html`` is never re-validated, so they may no longer apply.
    """

    html: str
    status: RepairStatus
    validation_rounds: int = 0
    repair_rounds: int = 0
    remaining_errors: list[ValidationMessage] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return self.status == RepairStatus.VALID


async def validate_and_repair(
    html: str,
    validator: Validator,
    repairer: Repairer,
    max_iterations: int = 5,
) -> RepairOutcome:
    """Drive validation and repair rounds for one candidate document.

    Args:
        html: Candidate HTML from the generation client.
        validator: Object with ``async validate(html) -> messages``.
        repairer: Object with ``async repair(html, errors) -> html``.
        max_iterations: Maximum number of repair calls.

    Returns:
        RepairOutcome with the final HTML and why the loop stopped.
    """
    max_iterations = max(1, max_iterations)
    current = html
    validation_rounds = 0
    repair_rounds = 0
    errors: list[ValidationMessage] = []

    for round_number in range(1, max_iterations + 1):
        try:
            errors = blocking(await validator.validate(current))
        except Exception as e:
            logger.warning("Validation round %d raised, treating as clean: %s", round_number, e)
            errors = []
        validation_rounds += 1

        logger.info(
            "Validation pass %d: %d blocking error(s)",
            round_number, len(errors),
            extra={
                "markup_errors": sum(1 for m in errors if m.origin == "markup"),
                "runtime_errors": sum(1 for m in errors if m.origin == "runtime"),
            },
        )

        if not errors:
            return RepairOutcome(current, RepairStatus.VALID, validation_rounds, repair_rounds)

        before = current
        try:
            current = await repairer.repair(current, errors)
        except GenerationError as e:
            logger.warning("Repair call failed on pass %d, keeping current HTML: %s", round_number, e.message)
            return RepairOutcome(before, RepairStatus.REPAIR_FAILED, validation_rounds, repair_rounds, errors)
        except Exception:
            logger.exception("Repair raised unexpectedly on pass %d, keeping current HTML", round_number)
            return RepairOutcome(before, RepairStatus.REPAIR_FAILED, validation_rounds, repair_rounds, errors)
        repair_rounds += 1

        if current == before:
            logger.warning("Repair returned identical HTML on pass %d, stopping early", round_number)
            return RepairOutcome(current, RepairStatus.STALLED, validation_rounds, repair_rounds, errors)

    logger.warning(
        "Reached max iterations (%d) with errors remaining, accepting best-effort HTML",
        max_iterations,
    )
    return RepairOutcome(current, RepairStatus.EXHAUSTED, validation_rounds, repair_rounds, errors)
