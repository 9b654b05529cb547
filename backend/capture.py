import logging
from datetime import date
from typing import Any, Optional

from llm import LLMClient, LLMError
from models import CATEGORIES, ENERGIES, PRIORITIES, TaskDraft
from prompts import JSON_ONLY_SYSTEM, PARSE_TASK_PROMPT

logger = logging.getLogger(__name__)

FALLBACK_TITLE_LENGTH = 40


def fallback_draft(text: str) -> TaskDraft:
    """Draft used when the model cannot parse the text."""
    return TaskDraft(
        title=text.strip()[:FALLBACK_TITLE_LENGTH],
        priority="medium",
        category="personal",
        energy="medium",
        ai_hint="Task added",
    )


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> str:
    if isinstance(value, str) and value.strip().lower() in allowed:
        return value.strip().lower()
    return default


def _deadline(value: Any) -> Optional[date]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        # Accept full ISO timestamps too; only the date part is kept
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def draft_from_reply(data: Any, text: str) -> TaskDraft:
    """Turn a decoded model reply into a draft, coercing bad fields to defaults."""
    if not isinstance(data, dict):
        return fallback_draft(text)

    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        title = text.strip()[:FALLBACK_TITLE_LENGTH]

    hint = data.get("aiHint")
    return TaskDraft(
        title=title.strip(),
        deadline=_deadline(data.get("deadline")),
        priority=_choice(data.get("priority"), PRIORITIES, "medium"),
        category=_choice(data.get("category"), CATEGORIES, "personal"),
        energy=_choice(data.get("energy"), ENERGIES, "medium"),
        ai_hint=hint.strip() if isinstance(hint, str) and hint.strip() else None,
    )


class TaskCapture:
    """Parses free-form text into a TaskDraft with Claude's help."""

    MAX_TOKENS = 300

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def parse(self, text: str, today: Optional[date] = None) -> TaskDraft:
        if not text.strip():
            raise ValueError("Task text is empty")

        today = today or date.today()
        prompt = PARSE_TASK_PROMPT.format(today=today.isoformat(), text=text.strip())
        try:
            data = await self.llm.complete_json(JSON_ONLY_SYSTEM, prompt, self.MAX_TOKENS)
        except LLMError as e:
            logger.warning(f"Task parsing fell back to raw text: {e}")
            return fallback_draft(text)
        return draft_from_reply(data, text)
