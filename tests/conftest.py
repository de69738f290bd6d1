from datetime import datetime, timedelta, timezone

import pytest
import pytz
from flask import g
from flask.testing import FlaskClient

from pickem import create_app, db
from pickem.models import Game, User
from pickem.services.live_channel import LiveChannel

SEASON = 2025

# Sunday 2025-09-14, 08:00 Eastern; week 1 kicks off at 1:00p, 4:25p and 8:20p
SUNDAY_MORNING = datetime(2025, 9, 14, 12, 0, tzinfo=timezone.utc)
KICKOFF_1PM = datetime(2025, 9, 14, 17, 0, tzinfo=timezone.utc)
KICKOFF_425PM = datetime(2025, 9, 14, 20, 25, tzinfo=timezone.utc)
KICKOFF_820PM = datetime(2025, 9, 15, 0, 20, tzinfo=timezone.utc)


def schedule_tokens(kickoff):
    """(YYYYMMDD, 'h:MMa|p') Eastern tokens for an aware UTC kickoff"""
    local = kickoff.astimezone(pytz.timezone("America/New_York"))
    hour = local.hour % 12 or 12
    meridiem = "p" if local.hour >= 12 else "a"
    return local.strftime("%Y%m%d"), f"{hour}:{local.minute:02d}{meridiem}"


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


class _FreshIdentityClient(FlaskClient):
    """Drop Flask-Login's cached user between requests.

    The app fixture keeps one app context pushed for the whole test, and Flask
    reuses it for every test-client request, so ``g._login_user`` would
    otherwise leak from one request to the next.
    """

    def open(self, *args, **kwargs):
        g.pop("_login_user", None)
        return super().open(*args, **kwargs)


@pytest.fixture
def client(app):
    app.test_client_class = _FreshIdentityClient
    return app.test_client()


@pytest.fixture
def channel():
    return LiveChannel()


@pytest.fixture
def events(channel):
    """Every event published on the test channel, in order"""
    received = []
    channel.add_listener(received.append)
    return received


@pytest.fixture
def users(app):
    alice = User(id=1, display_name="Alice")
    bob = User(id=2, display_name="Bob")
    carol = User(id=3, display_name="Carol")
    admin = User(id=9, display_name="Commissioner", is_admin=True)
    db.session.add_all([alice, bob, carol, admin])
    db.session.commit()
    return {"alice": alice, "bob": bob, "carol": carol, "admin": admin}


@pytest.fixture
def make_game(app):
    def _make_game(
        game_id,
        home="BUF",
        away="KC",
        week=1,
        season=SEASON,
        kickoff=None,
        date="20250914",
        time="1:00p",
        **results,
    ):
        if kickoff is not None:
            date, time = schedule_tokens(kickoff)
        game = Game(
            game_id=game_id,
            season=season,
            week=week,
            home_team=home,
            away_team=away,
            scheduled_date=date,
            scheduled_time_text=time,
            **results,
        )
        db.session.add(game)
        db.session.commit()
        return game

    return _make_game


@pytest.fixture
def week_one(make_game):
    """Three Sunday games of week 1, earliest first"""
    return [
        make_game("20250914_KC@BUF", home="BUF", away="KC", time="1:00p"),
        make_game("20250914_DAL@PHI", home="PHI", away="DAL", time="4:25p"),
        make_game("20250914_NYJ@MIA", home="MIA", away="NYJ", time="8:20p"),
    ]


@pytest.fixture
def week_two(make_game):
    return [
        make_game("20250921_KC@DEN", home="DEN", away="KC", week=2, date="20250921", time="1:00p"),
        make_game("20250921_PHI@NYG", home="NYG", away="PHI", week=2, date="20250921", time="4:25p"),
    ]


def auth(user):
    return {"X-User-Id": str(user.id)}


def hours_from_now(hours):
    return datetime.now(timezone.utc) + timedelta(hours=hours)
