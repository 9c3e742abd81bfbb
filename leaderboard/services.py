"""Build the leaderboard services from the current Flask app's config."""

from flask import current_app

from .export import CsvExporter
from .queries import LeaderboardQuery
from .ranking import RankingEngine
from .recalculate import PointsRecalculator
from .scoring import load_points_formula


def _engine() -> RankingEngine:
    return RankingEngine(per_page=current_app.config["LEADERBOARD_PER_PAGE"])


def points_formula():
    # Loaded once per app; POINTS_TABLE_FILE changes need a restart.
    formula = current_app.extensions.get("leaderboard.points_formula")
    if formula is None:
        formula = load_points_formula(current_app.config.get("POINTS_TABLE_FILE"))
        current_app.extensions["leaderboard.points_formula"] = formula
    return formula


def get_query() -> LeaderboardQuery:
    return LeaderboardQuery(_engine(), per_page=current_app.config["LEADERBOARD_PER_PAGE"])


def get_exporter() -> CsvExporter:
    return CsvExporter(_engine())


def get_recalculator() -> PointsRecalculator:
    return PointsRecalculator(
        formula=points_formula(),
        lock_attempts=current_app.config["RECALC_LOCK_ATTEMPTS"],
        lock_backoff=current_app.config["RECALC_LOCK_BACKOFF"],
    )
