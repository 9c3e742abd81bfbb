"""CSV export of a full public leaderboard."""

import csv
import io
import logging
import re
from datetime import date
from typing import List, Optional

from .models import PublicOnly, Race, RankedEntry, ResultType, SortOrder, TeamResult, points_to_db
from .ranking import RankingEngine
from .scoring import format_seconds

log = logging.getLogger(__name__)

INDIVIDUAL_HEADER = ["Rank", "Name", "Total Time", "Points"]
TEAM_HEADER = ["Rank", "Team", "Average Total Time", "Points", "Members"]


def _points_cell(entry: RankedEntry) -> str:
    value = points_to_db(entry.result.points)
    return "" if value is None else str(value)


def _row(entry: RankedEntry) -> List[str]:
    res = entry.result
    if isinstance(res, TeamResult):
        return [
            str(entry.rank),
            entry.name,
            format_seconds(res.average_total_time),
            _points_cell(entry),
            str(res.member_count),
        ]
    return [str(entry.rank), entry.name, format_seconds(res.total_time), _points_cell(entry)]


class CsvExporter:
    def __init__(self, engine: Optional[RankingEngine] = None):
        self.engine = engine or RankingEngine()

    def export_csv(self, race_id: Optional[int], result_type: ResultType = ResultType.INDIVIDUAL) -> str:
        """Every visible ranked entry of the scope as UTF-8 CSV text, header first."""
        view = self.engine.view(
            race_id,
            result_type,
            visibility=PublicOnly(),
            sort=SortOrder.BEST,
            paginate=False,
        )
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(TEAM_HEADER if result_type is ResultType.TEAM else INDIVIDUAL_HEADER)
        for entry in view.data:
            writer.writerow(_row(entry))
        log.info("export_csv type=%s race_id=%s rows=%d", result_type.value, race_id, len(view.data))
        return buf.getvalue()


def export_filename(race: Optional[Race], result_type: ResultType, today: Optional[date] = None) -> str:
    """Download name, e.g. ``leaderboard_Trail_Lyon_team_2026-06-15.csv``."""
    today = today or date.today()
    if race is None:
        label = "all"
    else:
        label = re.sub(r"[^\w-]+", "_", race.name).strip("_") or str(race.race_id)
    return f"leaderboard_{label}_{result_type.value}_{today.isoformat()}.csv"
