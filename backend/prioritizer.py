"""
Prioritization Coordinator
==========================

Single entry point for ordering the task list:

    tasks = await coordinator.reprioritize(tasks, force=False)

Decision flow:
1. Fewer than two active tasks: nothing to rank, input returned as is.
2. Not forced and the cache is fresh: cached order is reconciled with the
   current list (no network).
3. Otherwise the ranking oracle is asked. Success replaces the cache entry;
   any failure returns the input unchanged and leaves the cache alone.

reprioritize never raises. Ranking is an enrichment, never a requirement
for the task list to stay usable.
"""
import asyncio
import logging
import sqlite3
from datetime import datetime
from typing import Callable, Optional

from models import CachedReason, PriorityStatus, Task, TaskSummary
from priority_cache import PriorityCache, reconcile
from ranking import OracleError, RankingOracle, time_of_day

logger = logging.getLogger(__name__)

# Ranking is skipped below this many active tasks
RANKING_THRESHOLD = 2


class PrioritizationCoordinator:

    def __init__(
        self,
        cache: PriorityCache,
        oracle: RankingOracle,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.cache = cache
        self.oracle = oracle
        self.clock = clock or cache.clock
        # Overlapping calls queue here; a queued call sees the cache the
        # previous one wrote.
        self._lock = asyncio.Lock()

    async def reprioritize(self, tasks: list[Task], force: bool = False) -> list[Task]:
        active = [t for t in tasks if t.is_active]
        if len(active) < RANKING_THRESHOLD:
            return list(tasks)

        async with self._lock:
            if not force:
                cached = self._from_cache(tasks)
                if cached is not None:
                    return cached
            return await self._rank(tasks, active)

    def _from_cache(self, tasks: list[Task]) -> Optional[list[Task]]:
        if not self.cache.is_valid():
            logger.debug("Priority cache miss")
            return None
        entry = self.cache.get()
        if entry is None:
            return None
        logger.debug(f"Priority cache hit ({len(entry.data)} entries)")
        return reconcile(entry, tasks)

    async def _rank(self, tasks: list[Task], active: list[Task]) -> list[Task]:
        summaries = [TaskSummary.from_task(t) for t in active]
        bucket = time_of_day(self.clock())
        logger.info(f"Ranking {len(summaries)} active tasks ({bucket})")

        try:
            ranking = await self.oracle.rank(summaries, bucket)
        except OracleError as e:
            logger.warning(f"Ranking unavailable, keeping current order: {e}")
            return list(tasks)
        except Exception as e:
            logger.exception(f"Unexpected ranking oracle error: {e}")
            return list(tasks)

        active_by_id = {t.id: t for t in active}
        ranked = []
        placed = set()
        for task_id in ranking.order:
            task = active_by_id.get(task_id)
            if task is None:
                logger.debug(f"Oracle returned unknown task id {task_id!r}; dropped")
                continue
            if task_id in placed:
                continue
            ranked.append(task.model_copy(update={"priority_reason": ranking.reasons.get(task_id)}))
            placed.add(task_id)

        # Active tasks the oracle left out keep their relative order at the end
        unranked = [
            t.model_copy(update={"priority_reason": None})
            for t in active if t.id not in placed
        ]
        reordered = [*ranked, *unranked]

        try:
            self.cache.put(
                CachedReason(id=t.id, priority_reason=t.priority_reason) for t in reordered
            )
        except sqlite3.Error as e:
            logger.error(f"Priority cache persistence failure: {e}")

        others = [t for t in tasks if not t.is_active]
        return [*reordered, *others]

    def status(self) -> PriorityStatus:
        return PriorityStatus(
            prioritized_at=self.cache.last_prioritized_at(),
            cache_valid=self.cache.is_valid(),
        )
