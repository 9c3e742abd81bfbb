"""Boundary parsing for request/CLI parameters.

Everything here raises InvalidScope; the ranking code itself never
validates.
"""

from typing import List, Optional, Union

from .errors import InvalidScope
from .models import ALL_TYPES, ResultType, SortOrder

# Upper bound for a caller-supplied page size.
MAX_PER_PAGE = 100


def parse_result_type(value: Union[str, ResultType, None], default: ResultType = ResultType.INDIVIDUAL) -> ResultType:
    if isinstance(value, ResultType):
        return value
    if value is None or str(value).strip() == "":
        return default
    try:
        return ResultType(str(value).strip().lower())
    except ValueError:
        raise InvalidScope(f"Invalid type '{value}'. Must be 'individual' or 'team'.") from None


def parse_recalc_types(value: Union[str, ResultType, None]) -> List[ResultType]:
    """Expand ``individual|team|all`` (default ``all``) into result types."""
    if value is None or (isinstance(value, str) and value.strip().lower() in ("", ALL_TYPES)):
        return [ResultType.INDIVIDUAL, ResultType.TEAM]
    try:
        return [parse_result_type(value)]
    except InvalidScope:
        raise InvalidScope(f"Invalid type '{value}'. Must be 'individual', 'team', or 'all'.") from None


def parse_sort(value: Union[str, SortOrder, None]) -> SortOrder:
    if isinstance(value, SortOrder):
        return value
    if value is None or str(value).strip() == "":
        return SortOrder.BEST
    try:
        return SortOrder(str(value).strip().lower())
    except ValueError:
        raise InvalidScope(f"Invalid sort '{value}'. Must be 'best' or 'worst'.") from None


def parse_race_id(value) -> Optional[int]:
    """Empty means "all races"; anything else must be a positive integer."""
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    try:
        race_id = int(value)
    except (TypeError, ValueError):
        raise InvalidScope(f"Invalid race id '{value}'.") from None
    if race_id <= 0:
        raise InvalidScope(f"Invalid race id '{value}'.")
    return race_id


def parse_page(value, default: int = 1, maximum: Optional[int] = None) -> int:
    try:
        page = int(value)
    except (TypeError, ValueError):
        return default
    if page < 1:
        return default
    if maximum is not None:
        return min(page, maximum)
    return page


def parse_bool(value, name: str = "force") -> bool:
    """Strict flag parsing: a real bool, or true/false/1/0 (any case)."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in ("true", "1"):
        return True
    if text in ("false", "0", ""):
        return False
    raise InvalidScope(f"Invalid {name} '{value}'. Must be true or false.")
