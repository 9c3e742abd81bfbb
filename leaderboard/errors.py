"""Exceptions raised by the leaderboard services."""

from typing import Optional


class LeaderboardError(Exception):
    """Base class for leaderboard failures."""


class InvalidScope(LeaderboardError):
    """Unknown race id, result type or sort order supplied by a caller."""


class ConcurrentRecalculation(LeaderboardError):
    """Another recalculation holds the scope lock; safe to retry later."""

    retryable = True

    def __init__(self, race_id: Optional[int], result_type: str, attempts: int):
        self.race_id = race_id
        self.result_type = result_type
        self.attempts = attempts
        super().__init__(
            f"Recalculation already running for race {race_id} ({result_type}); "
            f"gave up after {attempts} attempts"
        )
