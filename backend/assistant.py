import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from capture import TaskCapture
from database import TaskStore
from llm import LLMClient, LLMError
from models import Message, Task
from prompts import ADD_TASK_MARKER, ASSISTANT_SYSTEM

logger = logging.getLogger(__name__)

CONTEXT_TASKS = 8
HISTORY_MESSAGES = 6
ADD_TASK_PATTERN = re.compile(re.escape(ADD_TASK_MARKER) + r"[ \t]*(.*)")
ADDED_SUFFIX = " I added this task to your list."
ERROR_REPLY = "Something went wrong. Please try again."


@dataclass
class AssistantReply:
    text: str
    added_task: Optional[Task] = None


class Assistant:
    """Chat assistant that can turn a conversation into a new task."""

    MAX_TOKENS = 300

    def __init__(
        self,
        llm: LLMClient,
        capture: TaskCapture,
        tasks: TaskStore,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.llm = llm
        self.capture = capture
        self.tasks = tasks
        self.clock = clock

    def _system_prompt(self) -> str:
        active = [t for t in self.tasks.list_tasks() if t.is_active][:CONTEXT_TASKS]
        titles = ", ".join(t.title for t in active) or "no tasks"
        return ASSISTANT_SYSTEM.format(tasks=titles)

    async def reply(self, messages: list[Message]) -> AssistantReply:
        """Answer the last user message. Never raises on model errors."""
        recent = messages[-HISTORY_MESSAGES:]
        # The Messages API expects the conversation to open with a user turn
        while recent and recent[0].role != "user":
            recent = recent[1:]
        if not recent:
            return AssistantReply(text=ERROR_REPLY)
        history = [{"role": m.role, "content": m.content} for m in recent]

        try:
            text = await self.llm.complete(self._system_prompt(), history, self.MAX_TOKENS)
        except LLMError as e:
            logger.warning(f"Assistant reply failed: {e}")
            return AssistantReply(text=ERROR_REPLY)

        match = ADD_TASK_PATTERN.search(text)
        if not match:
            return AssistantReply(text=text.strip())

        title = match.group(1).strip()
        text = ADD_TASK_PATTERN.sub("", text).strip()
        if not title:
            return AssistantReply(text=text)
        now = self.clock()
        draft = await self.capture.parse(title, today=now.date())
        task = self.tasks.add_task(draft, now=now)
        return AssistantReply(text=text + ADDED_SUFFIX, added_task=task)
