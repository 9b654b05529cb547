import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from pydantic import ValidationError

from database import PRIORITY_CACHE_SLOT, Store
from models import CachedReason, PriorityCacheEntry, Task

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=1)


class PriorityCache:
    """
    Holds at most one ranking result in the ``priority_cache`` slot.

    The entry is only ever replaced whole. A stored record that no longer
    parses is treated as absent.
    """

    def __init__(
        self,
        store: Store,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock().timestamp() * 1000)

    def get(self) -> Optional[PriorityCacheEntry]:
        """Return the stored entry whether or not it is still fresh."""
        raw = self.store.get(PRIORITY_CACHE_SLOT)
        if raw is None:
            return None
        try:
            return PriorityCacheEntry.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Malformed priority cache record, ignoring it: {e}")
            return None

    def is_valid(self) -> bool:
        entry = self.get()
        if entry is None:
            return False
        age_ms = self._now_ms() - entry.at
        return age_ms < self.ttl.total_seconds() * 1000

    def put(self, ordered_reasons: Iterable[CachedReason]) -> PriorityCacheEntry:
        entry = PriorityCacheEntry(data=list(ordered_reasons), at=self._now_ms())
        self.store.set(PRIORITY_CACHE_SLOT, entry.model_dump(by_alias=True))
        logger.info(f"Priority cache written with {len(entry.data)} entries")
        return entry

    def clear(self) -> None:
        self.store.delete(PRIORITY_CACHE_SLOT)

    def last_prioritized_at(self) -> Optional[datetime]:
        entry = self.get()
        if entry is None:
            return None
        return datetime.fromtimestamp(entry.at / 1000)


def reconcile(entry: PriorityCacheEntry, tasks: list[Task]) -> list[Task]:
    """
    Apply a cached ordering to the current task list.

    Result is: cached active tasks in cached order (with the cached reason),
    then active tasks the cache has never seen, then every non-active task.
    Ids that are no longer active are skipped, so deleted tasks never come
    back. Each group keeps its internal order.
    """
    active_by_id = {t.id: t for t in tasks if t.is_active}

    reconciled = []
    placed = set()
    for item in entry.data:
        task = active_by_id.get(item.id)
        if task is None or item.id in placed:
            continue
        reconciled.append(task.model_copy(update={"priority_reason": item.priority_reason}))
        placed.add(item.id)

    added = [t for t in tasks if t.is_active and t.id not in placed]
    others = [t for t in tasks if not t.is_active]
    return [*reconciled, *added, *others]
