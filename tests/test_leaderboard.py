import pytest

from pickem import db
from pickem.models import Pick, ScoringRecord
from pickem.services.leaderboard import LeaderboardAggregator
from pickem.utils.cache_utils import LEADERBOARD, invalidate_model_cache
from tests.conftest import SEASON

GAMES = ["20250914_KC@BUF", "20250914_DAL@PHI", "20250914_NYJ@MIA", "20250914_LV@NE"]


def add_week(user_id, week, results, points, fantasy=0.0):
    """results: list of "won"/"lost" for the user's selections, in GAMES order"""
    outcomes = {game_id: result for game_id, result in zip(GAMES, results)}
    db.session.add(
        Pick(
            user_id=user_id,
            season=SEASON,
            week=week,
            selections={game_id: "KC" for game_id in outcomes},
            outcomes=outcomes,
            is_finalized=True,
        )
    )
    for index, (game_id, result) in enumerate(outcomes.items()):
        db.session.add(
            ScoringRecord(
                user_id=user_id,
                game_id=f"{game_id}_w{week}",
                season=SEASON,
                week=week,
                spread_team="KC",
                spread_correct=result == "won",
                spread_points=int(result == "won"),
                # Bonus points and fantasy points all sit on the first record
                total_points=points if index == 0 else 0,
                fantasy_points=fantasy if index == 0 else 0.0,
                is_final=True,
            )
        )
    db.session.commit()


@pytest.fixture
def board():
    return LeaderboardAggregator()


@pytest.fixture
def standings(users):
    add_week(1, 1, ["won", "won", "won"], 6, fantasy=3.0)
    add_week(2, 1, ["won", "won", "lost", "lost"], 4, fantasy=12.0)
    add_week(3, 1, ["won", "won", "won", "lost"], 4, fantasy=12.0)
    add_week(9, 1, ["won", "won", "won", "lost"], 4, fantasy=12.0)


def test_empty_leaderboards(board, users):
    assert board.season_standings(SEASON) == []
    assert board.weekly_standings(3, SEASON) == []


def test_season_ordering_and_tie_breaks(board, standings):
    rows = board.season_standings(SEASON)

    assert [row["user_id"] for row in rows] == [1, 3, 9, 2]
    assert rows[0]["display_name"] == "Alice"
    assert rows[0]["total_points"] == 6
    assert rows[1]["win_pct"] == 0.75
    assert rows[3]["wins"] == 2
    assert rows[3]["losses"] == 2


def test_season_totals_span_weeks(board, standings):
    add_week(2, 2, ["won"], 5, fantasy=1.5)
    invalidate_model_cache(LEADERBOARD)

    rows = {row["user_id"]: row for row in board.season_standings(SEASON)}
    assert rows[2]["total_points"] == 9
    assert rows[2]["fantasy_points"] == 13.5
    assert rows[2]["win_pct"] == 0.6
    assert [row["user_id"] for row in board.season_standings(SEASON)][0] == 2


def test_weekly_statistics(board, standings):
    add_week(2, 2, ["won"], 5)

    rows = {row["user_id"]: row for row in board.weekly_standings(1, SEASON)}
    assert set(rows) == {1, 2, 3, 9}
    assert rows[3]["correct_picks"] == 3
    assert rows[3]["total_picks"] == 4
    assert rows[3]["win_percentage"] == 0.75

    week_two = board.weekly_standings(2, SEASON)
    assert [row["user_id"] for row in week_two] == [2]
    assert week_two[0]["win_percentage"] == 1.0


def test_standings_are_cached_until_invalidated(board, standings):
    first = board.season_standings(SEASON)

    add_week(2, 2, ["won"], 10)
    assert board.season_standings(SEASON) == first

    invalidate_model_cache(LEADERBOARD)
    assert board.season_standings(SEASON)[0]["user_id"] == 2


def test_unknown_user_still_listed(board, users):
    add_week(42, 1, ["won"], 1)
    rows = board.season_standings(SEASON)
    assert rows[0]["display_name"] == "User 42"
