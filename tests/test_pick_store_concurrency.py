import threading

import pytest

from config import TestingConfig
from pickem import create_app, db
from pickem.errors import ConflictError
from pickem.models import Pick
from pickem.services.live_channel import LiveChannel
from pickem.services.pick_store import PickStore
from tests.conftest import SEASON, SUNDAY_MORNING

KC_BUF = "20250914_KC@BUF"


@pytest.fixture
def app(tmp_path, monkeypatch):
    """Each thread needs its own connection, so the database lives on disk"""
    monkeypatch.setattr(
        TestingConfig, "SQLALCHEMY_DATABASE_URI", f"sqlite:///{tmp_path / 'picks.db'}"
    )
    app = create_app("testing")
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def finalize_concurrently(app, payloads):
    """Run one finalizing upsert per (user_id, payload) at the same moment"""
    barrier = threading.Barrier(len(payloads))
    results = {}

    def submit(user_id, payload):
        with app.app_context():
            store = PickStore(channel=LiveChannel(), now=SUNDAY_MORNING)
            barrier.wait()
            try:
                store.upsert(user_id, 1, payload, season=SEASON)
                results[user_id] = "saved"
            except ConflictError as e:
                results[user_id] = e
            finally:
                db.session.remove()

    threads = [
        threading.Thread(target=submit, args=(user_id, payload))
        for user_id, payload in payloads.items()
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results


def split(results):
    saved = [user_id for user_id, result in results.items() if result == "saved"]
    conflicts = [result for result in results.values() if isinstance(result, ConflictError)]
    return saved, conflicts


def test_racing_locks_have_one_winner(app, users, week_one):
    payload = {"selections": {KC_BUF: "KC"}, "lockOfWeek": "KC", "isFinalized": True}
    results = finalize_concurrently(app, {1: payload, 2: dict(payload)})

    saved, conflicts = split(results)
    assert len(saved) == 1
    assert len(conflicts) == 1
    assert conflicts[0].reason == ConflictError.CLAIMED

    db.session.expire_all()
    holders = Pick.query.filter_by(week=1, is_finalized=True, lock_of_week="KC").all()
    assert [pick.user_id for pick in holders] == saved


def test_racing_touchdown_scorers_have_one_winner(app, users, week_one):
    results = finalize_concurrently(
        app,
        {
            1: {"selections": {KC_BUF: "KC"}, "touchdownScorer": "3121422", "isFinalized": True},
            2: {"selections": {KC_BUF: "BUF"}, "touchdownScorer": "3121422", "isFinalized": True},
        },
    )

    saved, conflicts = split(results)
    assert len(saved) == 1
    assert len(conflicts) == 1
    assert conflicts[0].reason == ConflictError.CLAIMED

    db.session.expire_all()
    holders = Pick.query.filter_by(week=1, is_finalized=True, touchdown_scorer="3121422").all()
    assert [pick.user_id for pick in holders] == saved
