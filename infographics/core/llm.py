"""LLM client for schema-constrained JSON completions via LiteLLM.

One instance is built per process from settings and handed to the
generation client and the repair agent. Every call asks the provider for a
JSON object matching a strict schema with a single required string field
and returns that field's value.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import litellm

from .config import ConfigurationError, Settings
from ..exceptions import MalformedResponseError, ProviderError

logger = logging.getLogger(__name__)


def single_string_schema(field: str, description: str) -> Dict[str, Any]:
    """JSON schema for an object with exactly one required string property."""
    return {
        "type": "object",
        "properties": {
            field: {"type": "string", "description": description},
        },
        "required": [field],
        "additionalProperties": False,
    }


@dataclass(frozen=True)
class StructuredOutput:
    """What a call expects back: schema name plus the one string field to extract."""

    name: str
    field: str
    description: str

    def response_format(self) -> Dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {
                "name": self.name,
                "strict": True,
                "schema": single_string_schema(self.field, self.description),
            },
        }


def extract_field(content: Optional[str], output: StructuredOutput, model: str = "") -> str:
    """Parse a completion body and return the required string field.

    Raises:
        MalformedResponseError: Empty body, invalid JSON, non-object JSON,
            or a missing, non-string or empty field.
    """
    if not content or not content.strip():
        raise MalformedResponseError("No response content from model", model=model)

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}", model=model) from e

    if not isinstance(parsed, dict):
        raise MalformedResponseError(
            f"Response JSON is a {type(parsed).__name__}, expected an object", model=model
        )

    value = parsed.get(output.field)
    if not isinstance(value, str) or not value.strip():
        raise MalformedResponseError(
            f"Response is missing required string field '{output.field}'", model=model
        )
    return value


class LLMClient:
    """Thin async wrapper around ``litellm.acompletion``."""

    def __init__(
        self,
        api_key: str,
        api_base: str = "",
        timeout: int = 600,
    ):
        if not api_key:
            raise ConfigurationError("LLM_API_KEY is required to call the LLM provider")
        self.api_key = api_key
        self.api_base = api_base
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        """Build the process-wide client. Raises ConfigurationError without an API key."""
        return cls(
            api_key=settings.llm_api_key,
            api_base=settings.llm_api_base,
            timeout=settings.llm_timeout,
        )

    async def complete_json(
        self,
        model: str,
        messages: List[Dict[str, str]],
        output: StructuredOutput,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Run one completion and return the schema's string field.

        Not retried here; the caller decides what a failure means.

        Raises:
            ProviderError: Network, HTTP or provider failure.
            MalformedResponseError: Response does not match the schema.
        """
        kwargs: Dict[str, Any] = {
            "model": model,
            "api_key": self.api_key,
            "messages": messages,
            "response_format": output.response_format(),
            "timeout": self.timeout,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            logger.warning("LLM call failed", extra={"model": model, "schema": output.name, "error": str(e)})
            raise ProviderError(f"LLM provider error ({model}): {e}", model=model) from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError) as e:
            raise MalformedResponseError(f"Unexpected response shape from {model}: {e}", model=model) from e

        value = extract_field(content, output, model=model)
        logger.debug(
            "LLM call succeeded",
            extra={"model": model, "schema": output.name, "chars": len(value)},
        )
        return value
