from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from pickem import limiter
from pickem.errors import ValidationError
from pickem.models import Game, ScoringRecord
from pickem.routes.api import bp
from pickem.services.leaderboard import LeaderboardAggregator
from pickem.services.pick_store import PickStore, validate_week
from pickem.utils.timezone_utils import get_current_season


def add_security_headers(f):
    """Add no-store caching headers to per-user API responses"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = f(*args, **kwargs)
        if isinstance(response, tuple):
            body = response[0]
        else:
            body = response
        if hasattr(body, "headers"):
            body.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return response

    return decorated_function


def _season_arg():
    return request.args.get("season", type=int) or get_current_season()


def _pick_submit_limit():
    return current_app.config.get("PICK_SUBMIT_RATE_LIMIT", "30 per minute")


@bp.route("/picks/<int:week>", methods=["GET"])
@login_required
@add_security_headers
def get_pick(week):
    """Current user's pick for a week (null when none saved yet)"""
    pick = PickStore().get(current_user.id, week, season=_season_arg())
    return jsonify({"success": True, "data": pick.to_dict() if pick else None})


@bp.route("/picks/<int:week>", methods=["PUT"])
@login_required
@limiter.limit(_pick_submit_limit)
@add_security_headers
def save_pick(week):
    """Create or update the current user's pick for a week"""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    pick = PickStore().upsert(current_user.id, week, payload, season=_season_arg())
    return jsonify({"success": True, "data": pick.to_dict()})


@bp.route("/picks/<int:week>", methods=["DELETE"])
@login_required
@add_security_headers
def delete_pick(week):
    """Delete the current user's draft pick for a week"""
    deleted = PickStore().delete(current_user.id, week, season=_season_arg())
    if not deleted:
        return jsonify({"success": False, "error": "No pick found for this week"}), 404
    return jsonify({"success": True, "data": {"week": week, "deleted": True}})


@bp.route("/picks/weeks")
@login_required
def finalized_weeks():
    """Weeks that have finalized picks (?mine=1 for the current user's only)"""
    mine = request.args.get("mine", "").lower() in ("1", "true", "yes")
    weeks = PickStore().list_weeks_with_finalized_picks(
        user_id=current_user.id if mine else None, season=_season_arg()
    )
    return jsonify({"success": True, "data": weeks})


@bp.route("/picks/week/<int:week>/all")
@login_required
@add_security_headers
def all_week_picks(week):
    """Everyone's finalized picks, visible once the caller has submitted their own"""
    store = PickStore()
    season = _season_arg()
    if not current_user.is_admin and not store.has_finalized(current_user.id, week, season):
        return (
            jsonify(
                {
                    "success": False,
                    "error": "Submit your picks for this week to see everyone else's",
                }
            ),
            403,
        )

    picks = store.get_all_finalized(week, season=season)
    return jsonify(
        {"success": True, "data": [pick.to_dict(include_user=True) for pick in picks]}
    )


@bp.route("/games/week/<int:week>")
def week_games(week):
    """Classified games for a week with edit flags"""
    week = validate_week(week)
    games = Game.get_games_for_week(week, _season_arg())
    return jsonify({"success": True, "data": [game.to_dict() for game in games]})


@bp.route("/leaderboard")
def leaderboard():
    """Season standings"""
    rows = LeaderboardAggregator().season_standings(_season_arg())
    return jsonify({"success": True, "data": rows})


@bp.route("/leaderboard/weekly")
def weekly_leaderboard():
    """Standings for one week"""
    week = validate_week(request.args.get("week"))
    rows = LeaderboardAggregator().weekly_standings(week, _season_arg())
    return jsonify({"success": True, "data": rows})


@bp.route("/scoring")
@login_required
def my_scoring():
    """Current user's scoring records, optionally for one week"""
    query = ScoringRecord.query.filter_by(user_id=current_user.id, season=_season_arg())
    week = request.args.get("week")
    if week is not None:
        query = query.filter_by(week=validate_week(week))
    records = query.order_by(ScoringRecord.week, ScoringRecord.game_id).all()
    return jsonify({"success": True, "data": [record.to_dict() for record in records]})
