"""Generation client: turns page and project context into candidate page HTML."""

import logging
from dataclasses import dataclass, field
from typing import List

from ..core.llm import LLMClient, StructuredOutput
from ..models import Page, Project
from .prompts import generation_system_prompt, generation_user_prompt

logger = logging.getLogger(__name__)

PAGE_HTML_OUTPUT = StructuredOutput(
    name="infographic_html",
    field="generatedHtml",
    description="Complete HTML page with embedded CSS for the infographic",
)


@dataclass
class GenerationContext:
    """Everything the model sees for one page generation."""

    project_name: str
    project_description: str
    style_description: str
    page_title: str
    content_markdown: str
    generation_hints: List[str] = field(default_factory=list)
    # Set only for a feedback-driven regeneration
    previous_html: str = ""
    previous_comment: str = ""
    user_comment: str = ""

    @property
    def is_regeneration(self) -> bool:
        """Feedback regeneration: there is HTML to revise and the user said how."""
        return bool(self.previous_html and self.user_comment)

    @classmethod
    def for_page(cls, project: Project, page: Page, user_comment: str = "") -> "GenerationContext":
        """Build the context for a queue item targeting *page*."""
        return cls(
            project_name=project.name or "",
            project_description=project.description or "",
            style_description=project.style_description or "",
            page_title=page.title or "",
            content_markdown=page.content_markdown or "",
            generation_hints=list(page.generation_hints or []),
            previous_html=page.generated_html or "",
            previous_comment=page.last_generation_comment or "",
            user_comment=user_comment or "",
        )


class GenerationClient:
    """Produces one candidate HTML document per call. Never retries."""

    def __init__(
        self,
        llm: LLMClient,
        model: str,
        footer_attribution: str,
        max_tokens: int = 100_000,
    ):
        self.llm = llm
        self.model = model
        self.footer_attribution = footer_attribution
        self.max_tokens = max_tokens

    def build_messages(self, context: GenerationContext) -> list[dict]:
        user_prompt = generation_user_prompt(
            project_name=context.project_name,
            project_description=context.project_description,
            style_description=context.style_description,
            page_title=context.page_title,
            content_markdown=context.content_markdown,
            generation_hints=context.generation_hints,
            previous_comment=context.previous_comment,
            user_comment=context.user_comment,
            is_regeneration=context.is_regeneration,
        )
        messages = [{"role": "system", "content": generation_system_prompt(self.footer_attribution)}]
        if context.is_regeneration:
            # The current page goes in as the model's own earlier answer.
            messages.append({"role": "assistant", "content": context.previous_html})
        messages.append({"role": "user", "content": user_prompt})
        return messages

    async def generate(self, context: GenerationContext) -> str:
        """Generate candidate HTML for the page.

        Raises:
            ProviderError: The provider call failed.
            MalformedResponseError: The response did not carry ``generatedHtml``.
        """
        logger.info(
            f"Generating HTML for page '{context.page_title}'",
            extra={"model": self.model, "regeneration": context.is_regeneration},
        )
        html = await self.llm.complete_json(
            model=self.model,
            messages=self.build_messages(context),
            output=PAGE_HTML_OUTPUT,
            max_tokens=self.max_tokens,
        )
        logger.info(f"Generated {len(html)} chars of HTML", extra={"model": self.model})
        return html
