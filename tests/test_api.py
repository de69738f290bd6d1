import pytest

from tests.conftest import auth, hours_from_now

WEEK = 3


@pytest.fixture
def open_week(make_game):
    """Week 3 kicking off two days from now"""
    return [
        make_game("W3_KC@BUF", home="BUF", away="KC", week=WEEK, kickoff=hours_from_now(48)),
        make_game("W3_DAL@PHI", home="PHI", away="DAL", week=WEEK, kickoff=hours_from_now(51)),
    ]


@pytest.fixture
def played_week(make_game):
    """Week 2, finished yesterday"""
    return [
        make_game(
            "W2_NYJ@MIA", home="MIA", away="NYJ", week=2, kickoff=hours_from_now(-30),
            raw_status="Final", home_score=20, away_score=17, spread_coverage_winner="MIA",
        ),
    ]


def test_week_games(client, open_week):
    response = client.get(f"/api/games/week/{WEEK}")
    assert response.status_code == 200
    games = response.get_json()["data"]
    assert {g["game_id"] for g in games} == {"W3_KC@BUF", "W3_DAL@PHI"}
    assert all(g["status"] == "scheduled" and g["is_editable"] for g in games)
    assert all(g["kickoff"] for g in games)


def test_week_games_rejects_bad_week(client, app):
    response = client.get("/api/games/week/30")
    assert response.status_code == 400
    assert response.get_json() == {
        "success": False,
        "error": "Week must be between 1 and 18",
        "field": "week",
    }


@pytest.mark.parametrize("headers", [{}, {"X-User-Id": "abc"}, {"X-User-Id": "404"}])
def test_picks_require_identity(client, users, open_week, headers):
    response = client.put(f"/api/picks/{WEEK}", json={}, headers=headers)
    assert response.status_code == 401
    assert response.get_json() == {"success": False, "error": "Authentication required"}


def test_save_and_read_pick(client, users, open_week):
    alice = users["alice"]
    response = client.put(
        f"/api/picks/{WEEK}",
        json={"selections": {"W3_KC@BUF": "kc"}, "lockOfWeek": "KC"},
        headers=auth(alice),
    )
    assert response.status_code == 200
    assert response.headers["Cache-Control"].startswith("no-store")
    saved = response.get_json()["data"]
    assert saved["selections"] == {"W3_KC@BUF": "KC"}
    assert saved["is_finalized"] is False

    fetched = client.get(f"/api/picks/{WEEK}", headers=auth(alice)).get_json()["data"]
    assert fetched["lock_of_week"] == "KC"
    assert client.get("/api/picks/4", headers=auth(alice)).get_json()["data"] is None


def test_save_pick_validation_error(client, users, open_week):
    response = client.put(
        f"/api/picks/{WEEK}",
        json={"selections": {"W3_KC@BUF": "NE"}},
        headers=auth(users["alice"]),
    )
    assert response.status_code == 400
    body = response.get_json()
    assert body["success"] is False
    assert body["field"] == "selections"


def test_save_pick_requires_json_object(client, users, open_week):
    response = client.put(f"/api/picks/{WEEK}", json=["KC"], headers=auth(users["alice"]))
    assert response.status_code == 400


def test_locked_week_conflict(client, users, played_week):
    response = client.put(
        "/api/picks/2", json={"selections": {"W2_NYJ@MIA": "MIA"}}, headers=auth(users["alice"])
    )
    assert response.status_code == 409
    assert response.get_json()["reason"] == "locked"


def test_claimed_lock_conflict(client, users, open_week):
    client.put(
        f"/api/picks/{WEEK}",
        json={"selections": {"W3_KC@BUF": "KC"}, "lockOfWeek": "KC", "isFinalized": True},
        headers=auth(users["alice"]),
    )
    response = client.put(
        f"/api/picks/{WEEK}",
        json={"selections": {"W3_KC@BUF": "KC"}, "lockOfWeek": "KC", "isFinalized": True},
        headers=auth(users["bob"]),
    )
    assert response.status_code == 409
    body = response.get_json()
    assert body["reason"] == "claimed"
    assert body["field"] == "lockOfWeek"


def test_delete_draft(client, users, open_week):
    alice = auth(users["alice"])
    client.put(f"/api/picks/{WEEK}", json={"selections": {"W3_KC@BUF": "KC"}}, headers=alice)

    assert client.delete(f"/api/picks/{WEEK}", headers=alice).status_code == 200
    assert client.delete(f"/api/picks/{WEEK}", headers=alice).status_code == 404


def test_others_picks_hidden_until_own_are_finalized(client, users, open_week):
    client.put(
        f"/api/picks/{WEEK}",
        json={"selections": {"W3_KC@BUF": "KC"}, "isFinalized": True},
        headers=auth(users["alice"]),
    )
    url = f"/api/picks/week/{WEEK}/all"

    assert client.get(url, headers=auth(users["bob"])).status_code == 403

    response = client.get(url, headers=auth(users["alice"]))
    assert response.status_code == 200
    picks = response.get_json()["data"]
    assert [p["user"]["display_name"] for p in picks] == ["Alice"]

    assert client.get(url, headers=auth(users["admin"])).status_code == 200


def test_finalized_weeks(client, users, open_week):
    alice = auth(users["alice"])
    client.put(f"/api/picks/{WEEK}", json={"isFinalized": True}, headers=alice)

    assert client.get("/api/picks/weeks", headers=alice).get_json()["data"] == [WEEK]
    mine = client.get("/api/picks/weeks?mine=1", headers=auth(users["bob"])).get_json()
    assert mine["data"] == []


def test_empty_leaderboards(client, app):
    assert client.get("/api/leaderboard").get_json() == {"success": True, "data": []}
    assert client.get("/api/leaderboard/weekly?week=1").get_json()["data"] == []


def test_weekly_leaderboard_requires_week(client, app):
    response = client.get("/api/leaderboard/weekly")
    assert response.status_code == 400
    assert response.get_json()["field"] == "week"


def test_live_config(client, app):
    data = client.get("/live/config").get_json()["data"]
    assert data["heartbeatSeconds"] == app.config["LIVE_HEARTBEAT_SECONDS"]
    assert data["maxReconnectAttempts"] == 5
    assert "subscribers" in data


def test_live_stream(client, app):
    response = client.get("/live/stream", buffered=False)
    try:
        assert response.status_code == 200
        assert response.mimetype == "text/event-stream"
        assert response.headers["Cache-Control"] == "no-cache, no-transform"
        assert response.headers["X-Accel-Buffering"] == "no"
        assert next(response.iter_encoded()) == b": connected\n\n"
    finally:
        response.close()


def test_admin_routes_require_admin(client, users):
    assert client.post("/admin/weeks/2/resolve").status_code == 401
    assert client.post("/admin/weeks/2/resolve", headers=auth(users["alice"])).status_code == 403


def test_admin_resolves_and_scores(client, users, played_week, make_game):
    from pickem import db
    from pickem.models import Pick

    db.session.add(
        Pick(
            user_id=users["alice"].id, season=2025, week=2,
            selections={"W2_NYJ@MIA": "MIA"}, is_finalized=True,
        )
    )
    db.session.commit()

    response = client.post("/admin/weeks/2/resolve", headers=auth(users["admin"]))
    assert response.status_code == 200
    summary = response.get_json()["data"]
    assert summary["games_resolved"] == 1
    assert summary["picks_updated"] == 1
    assert summary["records_scored"] == 1

    scoring = client.get("/api/scoring?week=2", headers=auth(users["alice"])).get_json()["data"]
    assert scoring[0]["total_points"] == 1

    board = client.get("/api/leaderboard").get_json()["data"]
    assert board[0]["display_name"] == "Alice"
    assert board[0]["wins"] == 1


def test_admin_prop_bet_moderation(client, users, open_week):
    client.put(
        f"/api/picks/{WEEK}",
        json={"propBet": "Allen 2+ passing TDs"},
        headers=auth(users["alice"]),
    )
    admin = auth(users["admin"])

    pending = client.get("/admin/prop-bets?status=pending", headers=admin).get_json()["data"]
    assert len(pending) == 1

    response = client.post(f"/admin/prop-bets/{pending[0]['id']}", json={"status": "approved"}, headers=admin)
    assert response.status_code == 200
    assert response.get_json()["data"]["prop_bet_status"] == "approved"

    assert client.post("/admin/prop-bets/999", json={"status": "approved"}, headers=admin).status_code == 404
    assert client.post(f"/admin/prop-bets/{pending[0]['id']}", json={"status": "maybe"}, headers=admin).status_code == 400
    assert client.get("/admin/prop-bets?status=bogus", headers=admin).status_code == 400


def test_admin_status(client, users):
    response = client.get("/admin/status", headers=auth(users["admin"]))
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["cache"]["type"] == "SimpleCache"
    assert data["socketio"]["total_connections"] == 0
    assert "sse_subscribers" in data
