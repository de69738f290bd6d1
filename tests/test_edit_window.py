from datetime import timedelta

from pickem.models import Game
from pickem.services.edit_window import EditWindowPolicy
from tests.conftest import KICKOFF_1PM, KICKOFF_820PM


def game(game_id, time="1:00p", status=None, date="20250914"):
    return Game(
        game_id=game_id,
        season=2025,
        week=1,
        home_team="BUF",
        away_team="KC",
        scheduled_date=date,
        scheduled_time_text=time,
        raw_status=status,
    )


def policy(now):
    return EditWindowPolicy(now=now)


def test_lockout_buffer_before_kickoff():
    g = game("early")
    assert policy(KICKOFF_1PM - timedelta(minutes=15)).can_edit_game(g)
    assert policy(KICKOFF_1PM - timedelta(minutes=10)).can_edit_game(g)
    assert not policy(KICKOFF_1PM - timedelta(minutes=5)).can_edit_game(g)
    assert not policy(KICKOFF_1PM + timedelta(hours=1)).can_edit_game(g)


def test_lockout_is_configurable():
    g = game("early")
    relaxed = EditWindowPolicy(now=KICKOFF_1PM - timedelta(minutes=5), lockout_minutes=2)
    assert relaxed.can_edit_game(g)


def test_game_without_kickoff_is_not_editable():
    assert not policy(KICKOFF_1PM).can_edit_game(game("tbd", date="unknown"))


def test_started_is_later_than_locked():
    g = game("early")
    p = policy(KICKOFF_1PM + timedelta(minutes=10))
    assert not p.can_edit_game(g)
    assert not p.is_started(g)
    assert policy(KICKOFF_1PM + timedelta(minutes=16)).is_started(g)


def test_week_editable_until_every_game_completed():
    games = [game("early"), game("late", time="8:20p")]
    assert policy(KICKOFF_1PM + timedelta(hours=7)).can_edit_week(games)
    assert not policy(KICKOFF_820PM + timedelta(hours=7)).can_edit_week(games)


def test_empty_week_is_not_editable():
    p = policy(KICKOFF_1PM)
    assert not p.can_edit_week([])
    assert not p.can_submit_week([])


def test_week_with_only_in_progress_games_cannot_be_submitted():
    games = [game("early"), game("late", time="1:00p")]
    p = policy(KICKOFF_1PM + timedelta(minutes=30))
    assert p.can_edit_week(games)
    assert not p.can_submit_week(games)


def test_editable_game_ids():
    games = [game("early"), game("late", time="8:20p"), game("done", status="Final", time="8:20p")]
    p = policy(KICKOFF_1PM - timedelta(minutes=5))
    assert p.editable_game_ids(games) == {"late"}
    assert p.can_submit_week(games)
