"""Read-side helpers over the ranking engine: public board and personal results."""

from dataclasses import replace
from typing import List, Optional

from .models import LeaderboardView, Owner, PublicOnly, Race, RankedEntry, ResultType, SortOrder
from .ranking import DEFAULT_PER_PAGE, RankingEngine, race_positions


class LeaderboardQuery:
    def __init__(self, engine: Optional[RankingEngine] = None, per_page: int = DEFAULT_PER_PAGE):
        self.engine = engine or RankingEngine(per_page=per_page)
        self.per_page = per_page

    def public_leaderboard(
        self,
        race_id: Optional[int],
        search: Optional[str] = None,
        result_type: ResultType = ResultType.INDIVIDUAL,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> LeaderboardView:
        """Public profiles only, best total time first."""
        return self.engine.view(
            race_id,
            result_type,
            visibility=PublicOnly(),
            search=search,
            sort=SortOrder.BEST,
            page=page,
            per_page=per_page or self.per_page,
        )

    # Name used by the HTTP layer.
    query = public_leaderboard

    def my_results(
        self,
        participant_id: int,
        search: Optional[str] = None,
        sort: SortOrder = SortOrder.BEST,
        result_type: ResultType = ResultType.INDIVIDUAL,
        race_id: Optional[int] = None,
        page: int = 1,
    ) -> LeaderboardView:
        """A participant's own results (or their teams'), public flag ignored.

        Each entry also carries ``race_rank``/``total_participants``: its
        position among everyone who finished that race.
        """
        view = self.engine.view(
            race_id,
            result_type,
            visibility=Owner(participant_id),
            search=search,
            sort=sort,
            page=page,
            per_page=self.per_page,
        )
        if not view.data:
            return view
        positions = race_positions(self.engine.load_results(race_id, result_type))
        view.data = [self._with_race_rank(e, positions) for e in view.data]
        return view

    @staticmethod
    def _with_race_rank(entry: RankedEntry, positions) -> RankedEntry:
        rank, population = positions.get((entry.result.race_id, entry.result.entity_id), (None, None))
        return replace(entry, race_rank=rank, total_participants=population)

    def list_races(self) -> List[Race]:
        return list(self.engine.store.list_races())

    def participant_result(self, race_id: int, participant_id: int) -> Optional[RankedEntry]:
        """One participant's row in a race, ranked against the whole race."""
        rows = self.engine.load_results(race_id, ResultType.INDIVIDUAL)
        positions = race_positions(rows)
        directory = self.engine.directory()
        for res in rows:
            if res.entity_id != participant_id:
                continue
            rank, population = positions[(res.race_id, res.entity_id)]
            race = directory.races.get(res.race_id)
            return RankedEntry(
                rank=rank,
                page=1,
                result=res,
                name=directory.name(res),
                race_name=race.name if race else None,
                race_date=race.date if race else None,
                race_rank=rank,
                total_participants=population,
            )
        return None
