"""Ranking engine: visibility filter, search, sort, rank and paginate.

Rank is always the 1-based position inside the filtered, sorted list, so a
hidden entry never leaves a gap. Ties on total time are broken by ascending
participant/team id in both sort orders.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import datastore
from .models import (
    LeaderboardView,
    Owner,
    ParticipantProfile,
    PublicOnly,
    Race,
    RankedEntry,
    Result,
    ResultType,
    SortOrder,
    TeamProfile,
    TeamResult,
    Visibility,
)

DEFAULT_PER_PAGE = 20
UNKNOWN_NAME = "Unknown"


def sort_results(results: Iterable[Result], sort: SortOrder = SortOrder.BEST) -> List[Result]:
    if sort is SortOrder.WORST:
        return sorted(results, key=lambda r: (-r.total_time, r.entity_id))
    return sorted(results, key=lambda r: (r.total_time, r.entity_id))


def rank_race(results: Iterable[Result]) -> List[Tuple[int, Result]]:
    """Rank a race's full population (no visibility filter), best first."""
    return list(enumerate(sort_results(results, SortOrder.BEST), start=1))


def race_positions(results: Iterable[Result]) -> Dict[Tuple[int, int], Tuple[int, int]]:
    """Map ``(race_id, entity_id)`` to ``(rank, population)`` per race."""
    by_race: Dict[int, List[Result]] = {}
    for res in results:
        by_race.setdefault(res.race_id, []).append(res)
    out: Dict[Tuple[int, int], Tuple[int, int]] = {}
    for race_id, rows in by_race.items():
        for rank, res in rank_race(rows):
            out[(race_id, res.entity_id)] = (rank, len(rows))
    return out


class _Directory:
    """Profile and race lookups for one ranking pass."""

    def __init__(
        self,
        participants: Mapping[int, ParticipantProfile],
        teams: Mapping[int, TeamProfile],
        races: Mapping[int, Race],
    ):
        self.participants = participants
        self.teams = teams
        self.races = races

    def name(self, res: Result) -> str:
        if isinstance(res, TeamResult):
            team = self.teams.get(res.team_id)
            return team.name if team and team.name else UNKNOWN_NAME
        person = self.participants.get(res.participant_id)
        return person.full_name if person and person.full_name else UNKNOWN_NAME

    def is_public(self, res: Result) -> bool:
        if isinstance(res, TeamResult):
            team = self.teams.get(res.team_id)
            return bool(team and team.is_public)
        person = self.participants.get(res.participant_id)
        return bool(person and person.is_public)

    def owned_by(self, res: Result, participant_id: int) -> bool:
        if isinstance(res, TeamResult):
            team = self.teams.get(res.team_id)
            if team and participant_id in team.member_ids:
                return True
            person = self.participants.get(participant_id)
            return bool(person and res.team_id in person.team_ids)
        return res.participant_id == participant_id

    def visible(self, res: Result, visibility: Visibility) -> bool:
        if isinstance(visibility, Owner):
            return self.owned_by(res, visibility.participant_id)
        return self.is_public(res)

    def matches(self, res: Result, needle: str) -> bool:
        haystack = [self.name(res)]
        if not isinstance(res, TeamResult):
            person = self.participants.get(res.participant_id)
            if person and person.email:
                haystack.append(person.email)
        race = self.races.get(res.race_id)
        if race and race.name:
            haystack.append(race.name)
        return any(needle in (h or "").lower() for h in haystack)


def build_view(
    results: Sequence[Result],
    directory: _Directory,
    visibility: Visibility,
    search: Optional[str] = None,
    sort: SortOrder = SortOrder.BEST,
    page: int = 1,
    per_page: Optional[int] = DEFAULT_PER_PAGE,
) -> LeaderboardView:
    """Filter, sort, rank and slice ``results`` into one page."""
    rows = [r for r in results if directory.visible(r, visibility)]
    needle = (search or "").strip().lower()
    if needle:
        rows = [r for r in rows if directory.matches(r, needle)]
    rows = sort_results(rows, sort)

    total = len(rows)
    page = max(int(page or 1), 1)
    if per_page:
        start = (page - 1) * per_page
        window = rows[start : start + per_page]
    else:
        start = 0
        page = 1
        window = rows

    data: List[RankedEntry] = []
    for offset, res in enumerate(window):
        race = directory.races.get(res.race_id)
        data.append(
            RankedEntry(
                rank=start + offset + 1,
                page=page,
                result=res,
                name=directory.name(res),
                race_name=race.name if race else None,
                race_date=race.date if race else None,
            )
        )
    return LeaderboardView(data=data, current_page=page, per_page=per_page, total=total)


class RankingEngine:
    """Loads raw rows and profiles from the datastore and ranks them."""

    def __init__(self, store=datastore, per_page: int = DEFAULT_PER_PAGE):
        self.store = store
        self.per_page = per_page

    def load_results(self, race_id: Optional[int], result_type: ResultType) -> Sequence[Result]:
        return self.store.list_results(result_type, race_id)

    def directory(self) -> _Directory:
        races = {race.race_id: race for race in self.store.list_races()}
        return _Directory(self.store.get_participants(), self.store.get_teams(), races)

    def view(
        self,
        race_id: Optional[int],
        result_type: ResultType,
        visibility: Visibility = PublicOnly(),
        search: Optional[str] = None,
        sort: SortOrder = SortOrder.BEST,
        page: int = 1,
        per_page: Optional[int] = None,
        paginate: bool = True,
    ) -> LeaderboardView:
        if not paginate:
            per_page = None
        elif not per_page:
            per_page = self.per_page
        results = self.load_results(race_id, result_type)
        return build_view(results, self.directory(), visibility, search, sort, page, per_page)
