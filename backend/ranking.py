import json
import logging
from datetime import datetime
from typing import Any, Protocol

from llm import LLMClient, LLMFailure, LLMUnavailable
from models import Ranking, TaskSummary, TimeOfDay
from prompts import JSON_ONLY_SYSTEM, PRIORITIZE_PROMPT

logger = logging.getLogger(__name__)


class OracleError(Exception):
    """Any reason the ranking oracle could not produce a ranking."""


class OracleUnavailable(OracleError):
    """No credential or configuration for the ranking capability."""


class OracleFailure(OracleError):
    """Transport error, error status, or a reply that is not a ranking."""


class RankingOracle(Protocol):
    async def rank(self, tasks: list[TaskSummary], time_of_day: TimeOfDay) -> Ranking:
        ...


def time_of_day(now: datetime) -> TimeOfDay:
    if now.hour < 12:
        return "morning"
    if now.hour < 17:
        return "afternoon"
    return "evening"


def parse_ranking(data: Any) -> Ranking:
    """
    Validate a decoded oracle reply.

    ``order`` must be present and be a list; ids are kept as strings.
    ``reasons`` is optional, and entries that are not strings are dropped.
    """
    if not isinstance(data, dict):
        raise OracleFailure(f"Expected a JSON object, got {type(data).__name__}")
    order = data.get("order")
    if not isinstance(order, list):
        raise OracleFailure("Reply has no 'order' list")

    raw_reasons = data.get("reasons")
    if not isinstance(raw_reasons, dict):
        raw_reasons = {}

    return Ranking(
        order=[str(task_id) for task_id in order if isinstance(task_id, (str, int))],
        reasons={
            str(task_id): reason
            for task_id, reason in raw_reasons.items()
            if isinstance(reason, str) and reason.strip()
        },
    )


class AnthropicRankingOracle:
    """Ranking oracle backed by Claude."""

    MAX_TOKENS = 1000

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def rank(self, tasks: list[TaskSummary], time_of_day: TimeOfDay) -> Ranking:
        payload = json.dumps([t.model_dump(mode="json") for t in tasks], ensure_ascii=False)
        prompt = PRIORITIZE_PROMPT.format(time_of_day=time_of_day, tasks=payload)
        try:
            data = await self.llm.complete_json(JSON_ONLY_SYSTEM, prompt, self.MAX_TOKENS)
        except LLMUnavailable as e:
            raise OracleUnavailable(str(e)) from e
        except LLMFailure as e:
            raise OracleFailure(str(e)) from e
        return parse_ranking(data)
