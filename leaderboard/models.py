"""Plain records exchanged between the datastore and the leaderboard services."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from .scoring import format_seconds


class ResultType(enum.Enum):
    INDIVIDUAL = "individual"
    TEAM = "team"


class SortOrder(enum.Enum):
    BEST = "best"
    WORST = "worst"


# Recalculation-only selector expanding to both result types.
ALL_TYPES = "all"
# Recalculation scope covering every race.
ALL_RACES = None


class Unset:
    """Points that have not been computed yet (NULL column)."""

    _instance: Optional["Unset"] = None

    def __new__(cls) -> "Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = Unset()


@dataclass(frozen=True)
class Computed:
    value: int


Points = Union[Unset, Computed]


def points_from_db(value: Optional[int]) -> Points:
    if value is None:
        return UNSET
    return Computed(int(value))


def points_to_db(points: Points) -> Optional[int]:
    if isinstance(points, Computed):
        return points.value
    return None


# Race times are NUMERIC(10,2) seconds; compare them exactly.
Seconds = Union[Decimal, int, float]


def to_seconds(value: Optional[Seconds]) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


@dataclass(frozen=True)
class Race:
    race_id: int
    name: str
    date: Optional[str] = None


@dataclass(frozen=True)
class RaceResult:
    participant_id: int
    race_id: int
    time: Seconds
    penalty: Seconds = 0
    points: Points = UNSET

    @property
    def entity_id(self) -> int:
        return self.participant_id

    @property
    def total_time(self) -> Decimal:
        return to_seconds(self.time) + to_seconds(self.penalty)


@dataclass(frozen=True)
class TeamResult:
    team_id: int
    race_id: int
    average_time: Seconds
    average_penalty: Seconds = 0
    member_count: int = 0
    points: Points = UNSET

    @property
    def entity_id(self) -> int:
        return self.team_id

    @property
    def total_time(self) -> Decimal:
        return to_seconds(self.average_time) + to_seconds(self.average_penalty)

    @property
    def average_total_time(self) -> Decimal:
        return self.total_time


Result = Union[RaceResult, TeamResult]


@dataclass(frozen=True)
class ParticipantProfile:
    participant_id: int
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    is_public: bool = False
    team_ids: Tuple[int, ...] = ()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class TeamProfile:
    team_id: int
    name: str = ""
    is_public: bool = True
    member_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class PublicOnly:
    pass


@dataclass(frozen=True)
class Owner:
    participant_id: int


Visibility = Union[PublicOnly, Owner]


@dataclass(frozen=True)
class RankedEntry:
    rank: int
    page: int
    result: Result
    name: str
    race_name: Optional[str] = None
    race_date: Optional[str] = None
    # Position in the race's full population (personal views only).
    race_rank: Optional[int] = None
    total_participants: Optional[int] = None

    @property
    def result_type(self) -> ResultType:
        if isinstance(self.result, TeamResult):
            return ResultType.TEAM
        return ResultType.INDIVIDUAL

    def to_dict(self) -> Dict[str, Any]:
        res = self.result
        out: Dict[str, Any] = {
            "rank": self.rank,
            "race_id": res.race_id,
            "race_name": self.race_name,
            "race_date": self.race_date,
            "points": points_to_db(res.points),
        }
        if isinstance(res, TeamResult):
            out.update(
                {
                    "equ_id": res.team_id,
                    "team_name": self.name,
                    "average_temps": float(res.average_time),
                    "average_temps_formatted": format_seconds(res.average_time),
                    "average_malus": float(res.average_penalty),
                    "average_malus_formatted": format_seconds(res.average_penalty),
                    "average_temps_final": float(res.average_total_time),
                    "average_temps_final_formatted": format_seconds(res.average_total_time),
                    "member_count": res.member_count,
                }
            )
        else:
            out.update(
                {
                    "user_id": res.participant_id,
                    "user_name": self.name,
                    "temps": float(res.time),
                    "temps_formatted": format_seconds(res.time),
                    "malus": float(res.penalty),
                    "malus_formatted": format_seconds(res.penalty),
                    "temps_final": float(res.total_time),
                    "temps_final_formatted": format_seconds(res.total_time),
                }
            )
        if self.race_rank is not None:
            out["race_rank"] = self.race_rank
            out["total_participants"] = self.total_participants
        return out


@dataclass
class LeaderboardView:
    data: List[RankedEntry] = field(default_factory=list)
    current_page: int = 1
    per_page: Optional[int] = 20
    total: int = 0

    @property
    def last_page(self) -> int:
        if not self.per_page or self.total == 0:
            return 1
        return (self.total + self.per_page - 1) // self.per_page

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [e.to_dict() for e in self.data],
            "current_page": self.current_page,
            "last_page": self.last_page,
            "per_page": self.per_page,
            "total": self.total,
        }


@dataclass(frozen=True)
class RaceRecalculation:
    race_id: int
    result_type: ResultType
    total: int
    updated: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "race_id": self.race_id,
            "type": self.result_type.value,
            "total": self.total,
            "updated": self.updated,
        }
