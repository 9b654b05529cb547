import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from pydantic import ValidationError

from database import INSIGHT_SLOT, Store
from llm import LLMClient
from models import (
    CATEGORIES,
    PRIORITIES,
    AnalyticsReport,
    CategoryStats,
    DayStats,
    Insight,
    PriorityStats,
    Task,
)
from prompts import INSIGHT_PROMPT, INSIGHT_SYSTEM

logger = logging.getLogger(__name__)

OVERDUE_PENALTY = 5
WEEK_DAYS = 7

# (minimum score, label), highest band first
FLOW_BANDS = [
    (80, "Excellent flow"),
    (50, "Good rhythm"),
    (20, "Room to grow"),
    (0, "Start small"),
]


def is_overdue(task: Task, today: date) -> bool:
    return task.is_active and task.deadline is not None and task.deadline < today


def flow_score(total: int, done: int, overdue: int) -> int:
    """Share of done tasks in percent, minus a penalty per overdue task."""
    if not total:
        return 0
    return max(0, round(done / total * 100) - overdue * OVERDUE_PENALTY)


def flow_label(score: int) -> str:
    for minimum, label in FLOW_BANDS:
        if score >= minimum:
            return label
    return FLOW_BANDS[-1][1]


def build_report(tasks: list[Task], today: Optional[date] = None) -> AnalyticsReport:
    today = today or date.today()
    done = [t for t in tasks if not t.is_active]
    active = [t for t in tasks if t.is_active]
    overdue = [t for t in active if is_overdue(t, today)]
    score = flow_score(len(tasks), len(done), len(overdue))

    by_category = []
    for category in CATEGORIES:
        in_category = [t for t in tasks if t.category == category]
        category_done = sum(1 for t in in_category if not t.is_active)
        by_category.append(CategoryStats(
            category=category,
            total=len(in_category),
            done=category_done,
            pct=round(category_done / len(in_category) * 100) if in_category else 0,
        ))

    by_priority = [
        PriorityStats(
            priority=priority,
            total=sum(1 for t in tasks if t.priority == priority),
            done=sum(1 for t in done if t.priority == priority),
        )
        for priority in PRIORITIES
    ]

    by_day = []
    for offset in range(WEEK_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        by_day.append(DayStats(
            day=day,
            created=sum(1 for t in tasks if t.created_at.date() == day),
            completed=sum(1 for t in done if t.done_at and t.done_at.date() == day),
        ))

    return AnalyticsReport(
        total=len(tasks),
        done=len(done),
        active=len(active),
        overdue=len(overdue),
        flow_score=score,
        flow_label=flow_label(score),
        by_category=by_category,
        by_priority=by_priority,
        by_day=by_day,
    )


class InsightService:
    """Short AI coaching text built from the analytics report."""

    MAX_TOKENS = 300

    def __init__(self, llm: LLMClient, store: Store, clock: Callable[[], datetime] = datetime.now):
        self.llm = llm
        self.store = store
        self.clock = clock

    def latest(self) -> Optional[Insight]:
        raw = self.store.get(INSIGHT_SLOT)
        if raw is None:
            return None
        try:
            return Insight.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Malformed stored insight, ignoring it: {e}")
            return None

    async def generate(self, report: AnalyticsReport) -> Insight:
        """Ask Claude for fresh insights. LLMError propagates; the stored insight is kept then."""
        best_day = max(report.by_day, key=lambda d: d.completed, default=None)
        prompt = INSIGHT_PROMPT.format(
            total=report.total,
            done=report.done,
            active=report.active,
            overdue=report.overdue,
            flow_score=report.flow_score,
            by_category=", ".join(f"{c.category}: {c.done}/{c.total}" for c in report.by_category),
            by_priority=", ".join(f"{p.priority}: {p.done}/{p.total}" for p in report.by_priority),
            best_day=best_day.day.strftime("%A") if best_day else "none",
        )
        text = await self.llm.complete(
            INSIGHT_SYSTEM, [{"role": "user", "content": prompt}], self.MAX_TOKENS
        )
        insight = Insight(text=text.strip(), at=int(self.clock().timestamp() * 1000))
        self.store.set(INSIGHT_SLOT, insight.model_dump())
        return insight
