from unittest import mock

import pytest
import requests

from pickem import db
from pickem.errors import UpstreamDataError
from pickem.models import Game
from pickem.utils.data_sync import DataSync
from tests.conftest import SEASON


def feed_row(**overrides):
    row = {
        "gameID": "20250914_KC@BUF",
        "season": SEASON,
        "week": 1,
        "homeTeam": "BUF",
        "awayTeam": "KC",
        "scheduledDate": "20250914",
        "scheduledTime": "1:00p",
        "status": "Scheduled",
    }
    row.update(overrides)
    return row


def ok_response(payload):
    response = mock.Mock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


def http_error(status):
    response = mock.Mock(status_code=status, headers={})
    error = requests.exceptions.HTTPError(f"{status} error", response=response)
    failing = mock.Mock()
    failing.raise_for_status.side_effect = error
    return failing


@pytest.fixture
def sync(app):
    return DataSync(feed_url="http://feed.test/api/", max_retries=3)


@pytest.fixture(autouse=True)
def no_sleep():
    with mock.patch("pickem.utils.data_sync.time.sleep") as sleep:
        yield sleep


def test_sync_week_creates_and_updates(sync):
    rows = [feed_row(), feed_row(gameID="20250914_DAL@PHI", homeTeam="phi", awayTeam="dal")]
    with mock.patch.object(sync.session, "get", return_value=ok_response(rows)) as get:
        assert sync.sync_week(1, SEASON) == {"week": 1, "created": 2, "updated": 0, "skipped": 0}

    get.assert_called_once_with(
        "http://feed.test/api/games", params={"season": SEASON, "week": 1}, timeout=sync.timeout
    )
    assert db.session.get(Game, "20250914_DAL@PHI").home_team == "PHI"

    final = feed_row(status="Final", homeScore="20", awayScore=27, spreadCoverageWinner="kc")
    with mock.patch.object(sync.session, "get", return_value=ok_response({"games": [final]})):
        assert sync.sync_week(1, SEASON)["updated"] == 1

    game = db.session.get(Game, "20250914_KC@BUF")
    assert (game.home_score, game.away_score) == (20, 27)
    assert game.spread_coverage_winner == "KC"
    assert game.raw_status == "Final"


def test_partial_row_keeps_known_results(sync):
    sync.apply_game(
        feed_row(status="Final", homeScore=24, awayScore=21, scoringPlays=[{"type": "TD", "playerID": "1"}]),
        SEASON,
    )
    db.session.commit()

    row = feed_row()
    del row["status"]
    sync.apply_game(row, SEASON)
    db.session.commit()

    game = db.session.get(Game, "20250914_KC@BUF")
    assert game.home_score == 24
    assert game.raw_status == "Final"
    assert game.touchdown_scorer_ids() == {"1"}


@pytest.mark.parametrize(
    "bad",
    [
        {"homeTeam": None},
        {"scheduledDate": "2025-09-14"},
        {"scheduledDate": "20251340"},
        {"week": "first"},
    ],
)
def test_bad_rows_are_skipped(sync, bad):
    rows = [feed_row(gameID="BAD", **bad), feed_row()]
    with mock.patch.object(sync.session, "get", return_value=ok_response(rows)):
        result = sync.sync_week(1, SEASON)

    assert result["created"] == 1
    assert result["skipped"] == 1
    assert db.session.get(Game, "BAD") is None


def test_unexpected_payload(sync):
    with mock.patch.object(sync.session, "get", return_value=ok_response("nope")):
        with pytest.raises(UpstreamDataError):
            sync.fetch_week(1, SEASON)


def test_timeout_is_retried(sync, no_sleep):
    responses = [requests.exceptions.Timeout("slow"), ok_response([feed_row()])]
    with mock.patch.object(sync.session, "get", side_effect=responses) as get:
        assert len(sync.fetch_week(1, SEASON)) == 1
    assert get.call_count == 2
    assert no_sleep.called


def test_server_errors_exhaust_retries(sync):
    with mock.patch.object(sync.session, "get", return_value=http_error(503)) as get:
        with pytest.raises(UpstreamDataError):
            sync.fetch_week(1, SEASON)
    assert get.call_count == 3


def test_client_error_is_not_retried(sync):
    with mock.patch.object(sync.session, "get", return_value=http_error(404)) as get:
        with pytest.raises(UpstreamDataError):
            sync.fetch_week(1, SEASON)
    assert get.call_count == 1


def test_season_sync_reports_failed_weeks(sync):
    def fake_sync_week(week, season):
        if week == 5:
            raise UpstreamDataError("feed down")
        return {"week": week, "created": 1, "updated": 0, "skipped": 0}

    with mock.patch.object(sync, "sync_week", side_effect=fake_sync_week):
        success, message = sync.sync_season_data(SEASON)

    assert success is False
    assert "[5]" in message
    assert message.startswith("Synced 17 games")


def test_admin_sync_surfaces_feed_failure(client, users):
    with mock.patch(
        "pickem.routes.admin.routes.DataSync.sync_week",
        side_effect=UpstreamDataError("feed down"),
    ):
        response = client.post("/admin/weeks/1/sync", headers={"X-User-Id": "9"})
    assert response.status_code == 502
    assert response.get_json() == {"success": False, "error": "feed down"}
