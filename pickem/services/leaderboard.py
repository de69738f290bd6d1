"""
Season and weekly leaderboards.

Rows are plain dicts so they can be cached and serialized as-is. Both
standings are cached per (season[, week]) and dropped whenever a scoring
pass invalidates the leaderboard cache generation.
"""

import logging

from sqlalchemy import func

from pickem import db
from pickem.models import Pick, ScoringRecord, User
from pickem.utils.cache_utils import LEADERBOARD, cached_query
from pickem.utils.timezone_utils import get_current_season

logger = logging.getLogger(__name__)


def _win_pct(wins, decisions):
    if not decisions:
        return 0.0
    return round(wins / decisions, 4)


def _sort_key(row):
    return (-row["total_points"], -row["fantasy_points"], -row["win_pct"], row["user_id"])


def _display_fields(user_id, directory):
    user = directory.get(user_id)
    return {
        "user_id": user_id,
        "display_name": user.display_name if user else f"User {user_id}",
        "avatar_ref": user.avatar_ref if user else None,
    }


def _point_totals(filters):
    query = db.session.query(
        ScoringRecord.user_id,
        func.coalesce(func.sum(ScoringRecord.total_points), 0),
        func.coalesce(func.sum(ScoringRecord.fantasy_points), 0.0),
    ).filter(*filters)
    return {
        user_id: (int(total), round(float(fantasy), 2))
        for user_id, total, fantasy in query.group_by(ScoringRecord.user_id).all()
    }


@cached_query(LEADERBOARD)
def _season_rows(season):
    picks = Pick.query.filter_by(season=season, is_finalized=True).all()
    totals = _point_totals([ScoringRecord.season == season])

    records = {}
    for pick in picks:
        wins, losses = records.get(pick.user_id, (0, 0))
        records[pick.user_id] = (wins + pick.wins, losses + pick.losses)

    user_ids = set(records) | set(totals)
    directory = User.directory(user_ids)

    rows = []
    for user_id in user_ids:
        wins, losses = records.get(user_id, (0, 0))
        total_points, fantasy_points = totals.get(user_id, (0, 0.0))
        row = _display_fields(user_id, directory)
        row.update(
            {
                "wins": wins,
                "losses": losses,
                "win_pct": _win_pct(wins, wins + losses),
                "total_points": total_points,
                "fantasy_points": fantasy_points,
            }
        )
        rows.append(row)

    rows.sort(key=_sort_key)
    return rows


@cached_query(LEADERBOARD)
def _weekly_rows(week, season):
    records = ScoringRecord.query.filter_by(season=season, week=week).all()
    if not records:
        return []

    picks = {
        pick.user_id: pick
        for pick in Pick.query.filter_by(season=season, week=week, is_finalized=True).all()
    }

    per_user = {}
    for record in records:
        stats = per_user.setdefault(
            record.user_id,
            {"total_points": 0, "fantasy_points": 0.0, "correct_picks": 0, "total_picks": 0},
        )
        stats["total_points"] += record.total_points or 0
        stats["fantasy_points"] += record.fantasy_points or 0.0
        if record.spread_team:
            stats["total_picks"] += 1
            if record.spread_correct:
                stats["correct_picks"] += 1

    directory = User.directory(per_user)

    rows = []
    for user_id, stats in per_user.items():
        pick = picks.get(user_id)
        wins = pick.wins if pick else 0
        losses = pick.losses if pick else 0
        row = _display_fields(user_id, directory)
        row.update(
            {
                "wins": wins,
                "losses": losses,
                "win_pct": _win_pct(wins, wins + losses),
                "total_points": stats["total_points"],
                "fantasy_points": round(stats["fantasy_points"], 2),
                "correct_picks": stats["correct_picks"],
                "total_picks": stats["total_picks"],
                "win_percentage": _win_pct(stats["correct_picks"], stats["total_picks"]),
            }
        )
        rows.append(row)

    rows.sort(key=_sort_key)
    return rows


class LeaderboardAggregator:
    def season_standings(self, season=None):
        season = season or get_current_season()
        return _season_rows(season)

    def weekly_standings(self, week, season=None):
        season = season or get_current_season()
        return _weekly_rows(int(week), season)
