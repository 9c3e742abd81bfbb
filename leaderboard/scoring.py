"""Points formulas and time formatting used by the leaderboard."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

# A points formula maps a 1-based race rank to integer points.
PointsFormula = Callable[[int], int]

# Built-in table used when no POINTS_TABLE_FILE is configured.
DEFAULT_POINTS_BY_RANK: List[Dict] = [
    {"rank": 1, "points": 100},
    {"rank": 2, "points": 80},
    {"rank": 3, "points": 65},
    {"rank": 4, "points": 55},
    {"rank": 5, "points": 50},
    {"rank": 6, "points": 45},
    {"rank": 7, "points": 40},
    {"rank": 8, "points": 36},
    {"rank": 9, "points": 32},
    {"rank": 10, "points": 29},
    {"rank": "default_or_higher", "points": 25},
]


def _build_lookup(entries: List[Dict], key_field: str, value_field: str) -> Tuple[Dict[int, float], float]:
    """Build lookup dict and default value from settings entries."""
    lookup: Dict[int, float] = {}
    default = 0.0
    for item in entries:
        key = item[key_field]
        value = item[value_field]
        if isinstance(key, int):
            lookup[int(key)] = value
        elif key == "default_or_higher":
            default = value
    return lookup, default


class TablePointsFormula:
    """Rank -> points lookup with a fallback for ranks past the table."""

    def __init__(self, entries: Optional[List[Dict]] = None):
        self.entries = list(entries if entries is not None else DEFAULT_POINTS_BY_RANK)
        self._lookup, self._default = _build_lookup(self.entries, "rank", "points")

    def __call__(self, rank: int) -> int:
        if rank < 1:
            raise ValueError(f"rank must be >= 1, got {rank}")
        return int(self._lookup.get(rank, self._default))

    def __repr__(self) -> str:
        return f"TablePointsFormula({len(self._lookup)} ranks, default={self._default})"


def load_points_formula(path: Optional[str] = None) -> TablePointsFormula:
    """Load the points table from JSON settings.

    The file holds ``{"points_by_rank": [{"rank": 1, "points": 100}, ...]}``.
    Without a path (argument or ``POINTS_TABLE_FILE``) the built-in table is
    used.
    """
    path = path or os.environ.get("POINTS_TABLE_FILE")
    if not path:
        return TablePointsFormula()
    with Path(path).open() as f:
        settings = json.load(f)
    return TablePointsFormula(settings["points_by_rank"])


def format_seconds(seconds: Optional[float]) -> str:
    """Render seconds as ``HH:MM:SS.ss`` (or ``MM:SS.ss`` under an hour)."""
    if seconds is None:
        return ""
    seconds = float(seconds)
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:05.2f}"
    return f"{minutes:02d}:{secs:05.2f}"


__all__ = [
    "DEFAULT_POINTS_BY_RANK",
    "PointsFormula",
    "TablePointsFormula",
    "format_seconds",
    "load_points_formula",
]
