"""Repair agent: a narrow LLM call that fixes only the listed validation errors."""

from __future__ import annotations

import json
import logging

from ..core.llm import LLMClient, StructuredOutput
from .html_validator import ERROR, INFO, WARNING, ValidationMessage
from .prompts import REPAIR_SYSTEM_PROMPT, repair_user_prompt

logger = logging.getLogger(__name__)

HTML_FIX_OUTPUT = StructuredOutput(
    name="html_fix",
    field="fixedHtml",
    description="The minimally fixed HTML string",
)

DEFAULT_ERROR_BUDGET = 6000

_SEVERITY_RANK = {ERROR: 0, WARNING: 1, INFO: 2}


def _serialized_size(message: ValidationMessage) -> int:
    return len(json.dumps(message.to_dict()))


def truncate_messages(messages: list[ValidationMessage], budget: int) -> list[ValidationMessage]:
    """Select whole messages whose JSON array fits in *budget* characters.

    Messages are taken most severe first, keeping their original order within a
    severity, and selection stops at the first message that does not fit. A
    message is never cut in half. The top-priority message is always kept, even
    when it alone exceeds the budget, so a non-empty input never becomes empty.
    """
    ordered = sorted(
        enumerate(messages),
        key=lambda pair: (_SEVERITY_RANK.get(pair[1].severity, len(_SEVERITY_RANK)), pair[0]),
    )

    selected: list[ValidationMessage] = []
    size = 2  # enclosing brackets
    for _, message in ordered:
        piece = _serialized_size(message) + (2 if selected else 0)  # ", " separator
        if selected and size + piece > budget:
            break
        selected.append(message)
        size += piece
    return selected


def serialize_messages(messages: list[ValidationMessage]) -> str:
    return json.dumps([m.to_dict() for m in messages])


class RepairAgent:
    """Point-fixes a document against an explicit error list."""

    def __init__(
        self,
        llm: LLMClient,
        model: str,
        error_budget: int = DEFAULT_ERROR_BUDGET,
        max_tokens: int = 32_000,
    ):
        self.llm = llm
        self.model = model
        self.error_budget = error_budget
        self.max_tokens = max_tokens

    async def repair(self, html: str, errors: list[ValidationMessage]) -> str:
        """Return *html* with the given errors fixed and nothing else changed.

        Raises:
            ValueError: If *errors* is empty; there is nothing to fix.
            ProviderError: The provider call failed.
            MalformedResponseError: The response did not carry ``fixedHtml``.
        """
        if not errors:
            raise ValueError("repair() needs at least one error to fix")

        selected = truncate_messages(errors, self.error_budget)
        if len(selected) < len(errors):
            logger.info(
                "Sending %d of %d errors to the repair model (budget %d chars)",
                len(selected), len(errors), self.error_budget,
            )

        messages = [
            {"role": "system", "content": REPAIR_SYSTEM_PROMPT},
            {"role": "user", "content": repair_user_prompt(html, serialize_messages(selected))},
        ]
        return await self.llm.complete_json(
            model=self.model,
            messages=messages,
            output=HTML_FIX_OUTPUT,
            max_tokens=self.max_tokens,
        )
