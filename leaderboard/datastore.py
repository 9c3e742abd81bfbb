from typing import Dict, List, Optional, Sequence, Union

# Datastore proxy
# Services call these functions; each delegates to datastore_pg at call time
# so tests can monkeypatch the PostgreSQL implementation in one place.

from . import datastore_pg as _pg
from .models import ParticipantProfile, Race, RaceResult, ResultType, TeamProfile, TeamResult


def list_races() -> List[Race]:
    return _pg.list_races()


def find_race(race_id: int) -> Optional[Race]:
    return _pg.find_race(race_id)


def list_result_race_ids(result_type: ResultType) -> List[int]:
    return _pg.list_result_race_ids(result_type)


def list_results(result_type: ResultType, race_id: Optional[int] = None) -> Sequence[Union[RaceResult, TeamResult]]:
    """Raw result rows of one type, for a race or (``race_id=None``) all races."""
    if result_type is ResultType.TEAM:
        return _pg.list_team_results(race_id)
    return _pg.list_individual_results(race_id)


def get_participants() -> Dict[int, ParticipantProfile]:
    return _pg.get_participants()


def get_teams() -> Dict[int, TeamProfile]:
    return _pg.get_teams()


def update_points(result_type: ResultType, race_id: int, points_by_id: Dict[int, Optional[int]]) -> int:
    return _pg.update_points(result_type, race_id, points_by_id)


def scope_lock(result_type: ResultType, race_id: Optional[int]):
    return _pg.scope_lock(result_type, race_id)


def ping() -> bool:
    return _pg.ping()
