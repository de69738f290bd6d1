"""
Scoring Engine for the pick'em engine

This module turns resolved picks into per-(user, game) ScoringRecords.
For aggregated statistics and leaderboards, see
pickem/services/leaderboard.py
"""

import logging
from collections import namedtuple
from datetime import datetime, timezone

from pickem import db
from pickem.errors import UpstreamDataError
from pickem.models import Game, Pick, ScoringRecord
from pickem.models.pick import OUTCOME_LOST, OUTCOME_WON
from pickem.services.game_clock import classify, is_completed
from pickem.services.live_channel import SCORES_UPDATE, make_event
from pickem.services.outcome_resolver import game_winner
from pickem.utils.cache_utils import LEADERBOARD, invalidate_model_cache
from pickem.utils.timezone_utils import get_current_season, utc_now

logger = logging.getLogger(__name__)

SPREAD_POINTS = 1
LOCK_BONUS_POINTS = 1
TOUCHDOWN_POINTS = 1
PROP_BET_POINTS = 1

# Box score stat -> fantasy points per unit; anything else is worth 0
FANTASY_SCORING_RULES = {
    "passYards": 0.04,
    "passTD": 4,
    "passInterceptions": -2,
    "receptions": 0.5,
    "carries": 0.2,
    "rushYards": 0.1,
    "rushTD": 6,
    "fumbles": -2,
    "receivingYards": 0.1,
    "receivingTD": 6,
    "fgMade": 3,
    "fgMissed": -3,
    "xpMade": 1,
    "xpMissed": -1,
}

# Per-week facts every record of that week depends on
WeekContext = namedtuple(
    "WeekContext", ["games", "completed_ids", "anchor_game_id", "now"]
)


def calculate_player_fantasy_points(stat_line):
    """
    Fantasy points for one box score row.

    Returns 0.0 when there is no row; unparseable stat values count as 0.
    """
    if not stat_line:
        return 0.0

    points = 0.0
    for stat, weight in FANTASY_SCORING_RULES.items():
        value = stat_line.get(stat)
        if value in (None, ""):
            continue
        try:
            points += float(value) * weight
        except (TypeError, ValueError):
            continue
    return round(points, 2)


def _kickoff_sort_key(game, now):
    kickoff = classify(game, now=now).kickoff_instant
    # Games without a usable kickoff sort last
    return (kickoff is None, kickoff or datetime.max.replace(tzinfo=timezone.utc), game.game_id)


def build_week_context(games, now):
    ordered = sorted(games, key=lambda game: _kickoff_sort_key(game, now))
    completed_ids = {game.game_id for game in ordered if is_completed(game, now=now)}
    anchor = ordered[0].game_id if ordered else None
    return WeekContext(ordered, completed_ids, anchor, now)


def touchdown_game_id(player_id, context):
    """First completed game (by kickoff) in which the player scored a touchdown"""
    if not player_id:
        return None
    for game in context.games:
        if game.game_id not in context.completed_ids:
            continue
        if player_id in game.touchdown_scorer_ids():
            return game.game_id
    return None


def _safe_winner(game):
    try:
        return game_winner(game)
    except UpstreamDataError:
        return None


def evaluate(pick, game, context):
    """Column values of the ScoringRecord for (pick.user, game)"""
    selected = (pick.selections or {}).get(game.game_id)
    outcome = (pick.outcomes or {}).get(game.game_id) if selected else None

    spread_correct = None
    if outcome == OUTCOME_WON:
        spread_correct = True
    elif outcome == OUTCOME_LOST:
        spread_correct = False
    spread_points = SPREAD_POINTS if spread_correct else 0

    lock_team = None
    lock_correct = None
    lock_points = 0
    if pick.lock_of_week and pick.lock_game_id() == game.game_id:
        lock_team = pick.lock_of_week
        lock_correct = spread_correct
        lock_points = LOCK_BONUS_POINTS if lock_correct else 0

    touchdown_player = None
    touchdown_correct = None
    touchdown_points = 0
    fantasy_points = 0.0
    if pick.touchdown_scorer:
        scored_in = touchdown_game_id(pick.touchdown_scorer, context)
        if scored_in == game.game_id:
            touchdown_player = pick.touchdown_scorer
            touchdown_correct = True
            touchdown_points = TOUCHDOWN_POINTS
        elif scored_in is None and game.game_id == context.anchor_game_id:
            touchdown_player = pick.touchdown_scorer
            touchdown_correct = False
        fantasy_points = calculate_player_fantasy_points(
            game.player_stat_line(pick.touchdown_scorer)
        )

    prop_bet_description = None
    prop_bet_correct = None
    prop_bet_points = 0
    if pick.prop_bet and game.game_id == context.anchor_game_id:
        prop_bet_description = pick.prop_bet
        prop_bet_correct = pick.prop_bet_scores
        prop_bet_points = PROP_BET_POINTS if prop_bet_correct else 0

    return {
        "season": pick.season,
        "week": pick.week,
        "spread_team": selected,
        "spread_correct": spread_correct,
        "spread_points": spread_points,
        "lock_team": lock_team,
        "lock_correct": lock_correct,
        "lock_points": lock_points,
        "touchdown_player": touchdown_player,
        "touchdown_correct": touchdown_correct,
        "touchdown_points": touchdown_points,
        "prop_bet_description": prop_bet_description,
        "prop_bet_correct": prop_bet_correct,
        "prop_bet_points": prop_bet_points,
        "total_points": spread_points + lock_points + touchdown_points + prop_bet_points,
        "fantasy_points": fantasy_points,
        "home_team": game.home_team,
        "away_team": game.away_team,
        "home_score": game.home_score,
        "away_score": game.away_score,
        "winner": _safe_winner(game),
        "is_final": True,
    }


class ScoringEngine:
    def __init__(self, channel=None, now=None):
        self._channel = channel
        self._now = now

    @property
    def channel(self):
        if self._channel is None:
            from pickem import live_channel

            self._channel = live_channel
        return self._channel

    def _upsert(self, user_id, game_id, values, now):
        """Insert or update a record; evaluated_at only moves when content changes"""
        record = ScoringRecord.query.filter_by(user_id=user_id, game_id=game_id).first()
        if record is None:
            record = ScoringRecord(user_id=user_id, game_id=game_id, evaluated_at=now, **values)
            db.session.add(record)
            return record, True

        if record.content() == values:
            return record, False

        for name, value in values.items():
            setattr(record, name, value)
        record.evaluated_at = now
        return record, True

    def _relevant_game_ids(self, pick, context, existing_ids):
        ids = set(pick.selections or {})
        ids.update(existing_ids)
        if context.anchor_game_id:
            ids.add(context.anchor_game_id)
        scored_in = touchdown_game_id(pick.touchdown_scorer, context)
        if scored_in:
            ids.add(scored_in)
        return ids & context.completed_ids

    def score_user(self, user_id, game_id):
        """Score one user's pick on one game; None unless the game is completed and picked"""
        now = self._now or utc_now()
        game = db.session.get(Game, game_id)
        if game is None or not is_completed(game, now=now):
            return None

        pick = Pick.get_for_user_week(user_id, game.week, game.season)
        if pick is None or not pick.is_finalized:
            return None

        context = build_week_context(Game.get_games_for_week(game.week, game.season), now)
        record, changed = self._upsert(user_id, game.game_id, evaluate(pick, game, context), now)
        if changed:
            db.session.commit()
            invalidate_model_cache(LEADERBOARD)
        return record

    def score_week(self, week, season=None):
        """
        Score every finalized pick of a week against its completed games.

        Returns the list of current records. Running it again without new
        results leaves every record untouched.
        """
        season = season or get_current_season()
        now = self._now or utc_now()

        context = build_week_context(Game.get_games_for_week(week, season), now)
        games_by_id = {game.game_id: game for game in context.games}
        picks = Pick.get_finalized_for_week(week, season)

        existing = {}
        for record in ScoringRecord.query.filter_by(week=week, season=season).all():
            existing.setdefault(record.user_id, set()).add(record.game_id)

        pending = []
        errors = 0
        for pick in picks:
            try:
                for game_id in sorted(
                    self._relevant_game_ids(pick, context, existing.get(pick.user_id, ()))
                ):
                    values = evaluate(pick, games_by_id[game_id], context)
                    pending.append((pick.user_id, game_id, values))
            except Exception as e:
                logger.error(
                    f"Error scoring week {week} for user {pick.user_id}: {e}", exc_info=True
                )
                errors += 1

        records = []
        changed_count = 0
        try:
            for user_id, game_id, values in pending:
                record, changed = self._upsert(user_id, game_id, values, now)
                records.append(record)
                changed_count += int(changed)
            if changed_count:
                db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        invalidate_model_cache(LEADERBOARD)
        self.channel.publish(make_event(SCORES_UPDATE, week=week, season=season))

        logger.info(
            f"Scored week {week} ({season}): {len(records)} records, "
            f"{changed_count} changed, {errors} errors"
        )
        return records
