"""Batch points recalculation.

Points for a race come from that race's own full ranking (no visibility
filter). Each ``(race_id, result_type)`` scope is serialized: an in-process
lock covers threads, the datastore's advisory lock covers other processes.
Every race is committed separately, so an interrupted "all races" run can be
resumed with ``force=False``.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from . import datastore
from .errors import ConcurrentRecalculation, InvalidScope
from .models import Computed, RaceRecalculation, ResultType
from .ranking import rank_race
from .scoring import PointsFormula, TablePointsFormula
from .validation import parse_recalc_types

log = logging.getLogger(__name__)

ScopeKey = Tuple[Optional[int], ResultType]


class ScopeLocks:
    """Process-wide registry of one lock per recalculation scope."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[ScopeKey, threading.Lock] = {}

    def get(self, key: ScopeKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


_SCOPE_LOCKS = ScopeLocks()


class PointsRecalculator:
    def __init__(
        self,
        store=datastore,
        formula: Optional[PointsFormula] = None,
        lock_attempts: int = 5,
        lock_backoff: float = 0.2,
        locks: Optional[ScopeLocks] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.formula = formula or TablePointsFormula()
        self.lock_attempts = max(int(lock_attempts), 1)
        self.lock_backoff = lock_backoff
        self.locks = locks or _SCOPE_LOCKS
        self.sleep = sleep

    @contextmanager
    def hold_scope(self, race_id: Optional[int], result_type: ResultType) -> Iterator[None]:
        """Hold the scope lock, retrying with exponential backoff.

        Raises ConcurrentRecalculation once ``lock_attempts`` are used up.
        """
        local = self.locks.get((race_id, result_type))
        for attempt in range(1, self.lock_attempts + 1):
            if local.acquire(blocking=False):
                try:
                    with self.store.scope_lock(result_type, race_id) as held:
                        if held:
                            yield
                            return
                finally:
                    local.release()
            if attempt < self.lock_attempts:
                delay = self.lock_backoff * (2 ** (attempt - 1))
                log.info(
                    "recalc_lock_busy type=%s race_id=%s attempt=%d retry_in=%.2fs",
                    result_type.value, race_id, attempt, delay,
                )
                self.sleep(delay)
        log.warning(
            "recalc_lock_gave_up type=%s race_id=%s attempts=%d",
            result_type.value, race_id, self.lock_attempts,
        )
        raise ConcurrentRecalculation(race_id, result_type.value, self.lock_attempts)

    def recalculate_race(self, race_id: int, result_type: ResultType, force: bool = False) -> RaceRecalculation:
        """Recompute points for one race and one result type."""
        if self.store.find_race(race_id) is None:
            raise InvalidScope(f"Race with ID {race_id} not found")

        with self.hold_scope(race_id, result_type):
            rows = self.store.list_results(result_type, race_id)
            changes: Dict[int, Optional[int]] = {}
            for rank, res in rank_race(rows):
                if not force and isinstance(res.points, Computed):
                    continue
                changes[res.entity_id] = int(self.formula(rank))
            updated = self.store.update_points(result_type, race_id, changes) if changes else 0

        log.info(
            "recalc_race type=%s race_id=%s total=%d updated=%d force=%s",
            result_type.value, race_id, len(rows), updated, force,
        )
        return RaceRecalculation(race_id=race_id, result_type=result_type, total=len(rows), updated=updated)

    def recalculate_all(self, result_type: ResultType, force: bool = False) -> List[RaceRecalculation]:
        """Recompute every race holding results of ``result_type``, one race at a time."""
        out: List[RaceRecalculation] = []
        for race_id in self.store.list_result_race_ids(result_type):
            out.append(self.recalculate_race(race_id, result_type, force=force))
        return out

    def recalculate(
        self,
        scope: Optional[int],
        result_type: Union[str, ResultType, None] = None,
        force: bool = False,
    ) -> List[RaceRecalculation]:
        """Recalculate a single race (``scope=race_id``) or all races (``scope=None``).

        ``result_type`` accepts a ResultType or ``individual|team|all``.
        Returns one RaceRecalculation per processed race and type.
        """
        types = parse_recalc_types(result_type)
        out: List[RaceRecalculation] = []
        for rtype in types:
            if scope is None:
                out.extend(self.recalculate_all(rtype, force=force))
            else:
                out.append(self.recalculate_race(scope, rtype, force=force))
        return out


def summarize(results: List[RaceRecalculation]) -> Dict[str, Dict[str, int]]:
    """Totals per result type: ``{"individual": {"total": n, "updated": m}}``."""
    out: Dict[str, Dict[str, int]] = {}
    for r in results:
        agg = out.setdefault(r.result_type.value, {"total": 0, "updated": 0})
        agg["total"] += r.total
        agg["updated"] += r.updated
    return out
