from flask import jsonify, request
from flask_login import current_user

from pickem import live_channel
from pickem.auth import admin_required
from pickem.errors import ValidationError
from pickem.models.pick import PROP_BET_STATUSES
from pickem.routes.admin import bp
from pickem.services.pick_store import PickStore, validate_week
from pickem.services.scheduler_service import resolve_and_score, scheduler_service
from pickem.socketio_handlers import get_connection_stats
from pickem.utils.cache_utils import get_cache_stats
from pickem.utils.data_sync import DataSync
from pickem.utils.timezone_utils import get_current_season


def _season_arg():
    return request.args.get("season", type=int) or get_current_season()


@bp.route("/prop-bets")
@admin_required
def prop_bets():
    """Prop bets awaiting (or past) moderation"""
    status = request.args.get("status")
    if status and status not in PROP_BET_STATUSES:
        raise ValidationError(f"Unknown prop bet status: {status}", field="status")

    picks = PickStore().list_prop_bets(status=status, season=_season_arg())
    return jsonify(
        {"success": True, "data": [pick.to_dict(include_user=True) for pick in picks]}
    )


@bp.route("/prop-bets/<int:pick_id>", methods=["POST"])
@admin_required
def moderate_prop_bet(pick_id):
    """Approve or reject a prop bet, then rescore its week"""
    data = request.get_json(silent=True) or {}
    pick = PickStore().set_prop_bet_status(
        pick_id, data.get("status"), reviewer_id=current_user.id
    )
    if pick is None:
        return jsonify({"success": False, "error": "Prop bet not found"}), 404

    resolve_and_score(pick.week, pick.season)
    return jsonify({"success": True, "data": pick.to_dict(include_user=True)})


@bp.route("/weeks/<int:week>/resolve", methods=["POST"])
@admin_required
def resolve_week(week):
    """Resolve outcomes and score a week now"""
    week = validate_week(week)
    summary = resolve_and_score(week, _season_arg())
    return jsonify({"success": True, "data": summary})


@bp.route("/weeks/<int:week>/sync", methods=["POST"])
@admin_required
def sync_week(week):
    """Pull a week from the result feed now; feed failures surface as 502"""
    week = validate_week(week)
    result = DataSync().sync_week(week, _season_arg())
    return jsonify({"success": True, "data": result})


@bp.route("/scheduler")
@admin_required
def scheduler_status():
    """Background job status"""
    return jsonify({"success": True, "data": scheduler_service.get_status()})


@bp.route("/scheduler/action", methods=["POST"])
@admin_required
def scheduler_action():
    """Start, stop or force-run background jobs"""
    data = request.get_json(silent=True) or {}
    action = data.get("action")

    if action == "start":
        scheduler_service.start()
        return jsonify({"success": True, "data": {"message": "Scheduler started successfully"}})

    elif action == "stop":
        scheduler_service.stop()
        return jsonify({"success": True, "data": {"message": "Scheduler stopped successfully"}})

    elif action == "force_sync":
        success, message = scheduler_service.force_sync(data.get("sync_type", "resolve"))
        if success:
            return jsonify({"success": True, "data": {"message": message}})
        return jsonify({"success": False, "error": message}), 400

    return jsonify({"success": False, "error": "Unknown action"}), 400


@bp.route("/status")
@admin_required
def system_status():
    """Cache, live connection and feed client health"""
    feed = scheduler_service.data_sync
    return jsonify(
        {
            "success": True,
            "data": {
                "cache": get_cache_stats(),
                "socketio": get_connection_stats(),
                "sse_subscribers": live_channel.subscriber_count,
                "feed": feed.get_rate_limit_status() if feed else None,
            },
        }
    )
