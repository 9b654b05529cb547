"""
Async access to the Anthropic Messages API.

Every AI collaborator (ranking, capture, insight, assistant) goes through
LLMClient so credential handling and failure mapping live in one place.
Callers see only two failure kinds:

- LLMUnavailable: no usable API key was configured
- LLMFailure: transport/status error, empty reply, or a reply that does
  not parse as JSON when JSON was asked for
"""
import json
import logging
from typing import Any, Optional

import anthropic

from config import Settings

logger = logging.getLogger(__name__)


class LLMError(Exception):
    pass


class LLMUnavailable(LLMError):
    pass


class LLMFailure(LLMError):
    pass


def strip_code_fence(text: str) -> str:
    """Strip a markdown code block wrapper if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = lines[1:]  # Remove first line (```json)
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text.strip()


def parse_json_reply(text: str) -> Any:
    try:
        return json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise LLMFailure(f"Reply is not valid JSON: {e}") from e


class LLMClient:
    DEFAULT_MAX_TOKENS = 1000

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-5",
        client: Optional[anthropic.AsyncAnthropic] = None
    ):
        self.model = model
        self.client = client
        if self.client is None and api_key:
            self.client = anthropic.AsyncAnthropic(api_key=api_key)
        if self.client is None:
            logger.warning("ANTHROPIC_API_KEY not configured; AI features are disabled")

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        api_key = settings.anthropic_api_key if settings.has_api_key else None
        return cls(api_key=api_key, model=settings.model)

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def complete(
        self,
        system: str,
        messages: list[dict],
        max_tokens: int = DEFAULT_MAX_TOKENS
    ) -> str:
        """Send one Messages API request and return the reply text."""
        if self.client is None:
            raise LLMUnavailable("API key not configured")

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system,
                messages=messages
            )
        except anthropic.APIError as e:
            raise LLMFailure(f"API error: {e}") from e

        text = "".join(
            getattr(block, "text", "") for block in response.content
            if getattr(block, "type", None) == "text"
        )
        logger.debug(f"Claude response: {text[:200]}")
        if not text.strip():
            raise LLMFailure("Empty reply")
        return text

    async def complete_json(
        self,
        system: str,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS
    ) -> Any:
        text = await self.complete(system, [{"role": "user", "content": prompt}], max_tokens)
        return parse_json_reply(text)
