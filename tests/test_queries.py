from leaderboard.models import ResultType, SortOrder
from leaderboard.queries import LeaderboardQuery


def _two_race_user(seed):
    seed.race(1, "Marathon Paris", "2026-04-05")
    seed.race(2, "Trail Lyon", "2026-05-10")
    seed.user(1, "Alice", "Runner", is_public=False)
    seed.user(2)
    seed.user(3)
    # Alice wins race 1, is third of three in race 2
    seed.result(1, 1, 3600)
    seed.result(1, 2, 4000)
    seed.result(2, 2, 3500)
    seed.result(3, 2, 3700)


def test_public_leaderboard_scenario_b_private_user_hidden(seed):
    seed.race(1, "R1")
    seed.user(10, "User", "A", is_public=False)
    seed.user(11, "User", "B")
    seed.result(10, 1, 3600)
    seed.result(11, 1, 3700)

    view = LeaderboardQuery().query(1, "", ResultType.INDIVIDUAL)
    assert [(e.result.participant_id, e.rank) for e in view.data] == [(11, 1)]


def test_public_leaderboard_defaults_to_twenty_per_page(seed):
    seed.race(1)
    for uid in range(1, 26):
        seed.user(uid)
        seed.result(uid, 1, 4000 - uid)

    query = LeaderboardQuery()
    view = query.public_leaderboard(1)
    assert view.per_page == 20
    assert len(view.data) == 20
    assert view.data[0].result.participant_id == 25
    assert len(query.public_leaderboard(1, page=2).data) == 5


def test_my_results_search_by_race_name_scenario_d(seed):
    _two_race_user(seed)
    view = LeaderboardQuery().my_results(1, "Marathon", SortOrder.BEST, ResultType.INDIVIDUAL)
    assert view.total == 1
    assert view.data[0].race_name == "Marathon Paris"
    assert view.data[0].rank == 1


def test_my_results_ignores_public_flag_and_reports_race_rank(seed):
    _two_race_user(seed)
    view = LeaderboardQuery().my_results(1, None, SortOrder.BEST, ResultType.INDIVIDUAL)
    assert [(e.result.race_id, e.rank) for e in view.data] == [(1, 1), (2, 2)]
    assert [(e.race_rank, e.total_participants) for e in view.data] == [(1, 1), (3, 3)]


def test_my_results_worst_first(seed):
    _two_race_user(seed)
    view = LeaderboardQuery().my_results(1, "", SortOrder.WORST, ResultType.INDIVIDUAL)
    assert [e.result.race_id for e in view.data] == [2, 1]
    assert view.data[0].race_rank == 3
    assert [e.rank for e in view.data] == [1, 2]


def test_my_results_single_race(seed):
    _two_race_user(seed)
    view = LeaderboardQuery().my_results(1, None, SortOrder.BEST, ResultType.INDIVIDUAL, race_id=2)
    assert [e.result.race_id for e in view.data] == [2]
    assert view.data[0].race_rank == 3


def test_my_team_results_empty_for_user_without_team(seed):
    seed.race(1)
    seed.user(1)
    seed.team(10, members=[2])
    seed.team_result(10, 1, 3600)
    view = LeaderboardQuery().my_results(1, None, SortOrder.BEST, ResultType.TEAM)
    assert view.total == 0
    assert view.data == []


def test_my_team_results_include_private_team(seed):
    seed.race(1)
    seed.user(1)
    seed.team(10, "Fast", members=[1], is_public=False)
    seed.team(11, "Faster")
    seed.team_result(10, 1, 3600)
    seed.team_result(11, 1, 3500)
    view = LeaderboardQuery().my_results(1, None, SortOrder.BEST, ResultType.TEAM)
    assert [(e.name, e.race_rank, e.total_participants) for e in view.data] == [("Fast", 2, 2)]


def test_list_races_newest_first(seed):
    seed.race(1, "Old", "2025-01-01")
    seed.race(2, "New", "2026-01-01")
    assert [r.name for r in LeaderboardQuery().list_races()] == ["New", "Old"]


def test_participant_result_ranks_against_whole_race(seed):
    seed.race(1)
    for uid, t in ((1, 3400), (2, 3600), (3, 3800)):
        seed.user(uid, is_public=False)
        seed.result(uid, 1, t)
    query = LeaderboardQuery()
    entry = query.participant_result(1, 2)
    assert (entry.rank, entry.total_participants) == (2, 3)
    assert query.participant_result(1, 99) is None
