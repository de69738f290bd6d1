"""
Pick storage and submission rules.

Scarce claims (lock of the week, touchdown scorer) are enforced by partial
unique indexes on finalized picks rather than by read-then-write checks, so
two users racing for the same team or player get a deterministic winner: the
first write to land. The loser sees a ConflictError.
"""

import logging

from sqlalchemy.exc import IntegrityError, OperationalError

from pickem import db
from pickem.errors import (
    ConflictError,
    PickemError,
    TransientStoreError,
    ValidationError,
)
from pickem.models import Game, Pick, UsedTouchdownScorer
from pickem.models.pick import (
    PROP_BET_APPROVED,
    PROP_BET_PENDING,
    PROP_BET_REJECTED,
)
from pickem.services.edit_window import EditWindowPolicy
from pickem.services.live_channel import PICK_FINALIZE, PICK_UPDATE, make_event
from pickem.utils.timezone_utils import get_current_season, utc_now

logger = logging.getLogger(__name__)

MIN_WEEK = 1
MAX_WEEK = 18

# Sentinel for "field not present in payload"
_MISSING = object()


def _field(payload, camel, snake):
    if camel in payload:
        return payload[camel]
    return payload.get(snake, _MISSING)


def _clean_text(value, field):
    """None/blank -> None; non-strings are a validation error"""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    value = value.strip()
    return value or None


def validate_week(week):
    try:
        week = int(week)
    except (TypeError, ValueError):
        raise ValidationError("Invalid week value", field="week")
    if week < MIN_WEEK or week > MAX_WEEK:
        raise ValidationError(
            f"Week must be between {MIN_WEEK} and {MAX_WEEK}", field="week"
        )
    return week


def normalize_selections(raw):
    """Coerce selection keys/values to strings and drop empty entries"""
    if raw is None or raw is _MISSING:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError("selections must be an object", field="selections")
    normalized = {}
    for game_id, team in raw.items():
        if team is None or str(team).strip() == "":
            continue
        normalized[str(game_id)] = str(team).strip().upper()
    return normalized


class PickStore:
    def __init__(self, channel=None, now=None):
        self._channel = channel
        self._now = now

    @property
    def channel(self):
        if self._channel is None:
            from pickem import live_channel

            self._channel = live_channel
        return self._channel

    @property
    def now(self):
        return self._now or utc_now()

    # Reads

    def get(self, user_id, week, season=None):
        season = season or get_current_season()
        return Pick.get_for_user_week(user_id, validate_week(week), season)

    def get_all_finalized(self, week, season=None):
        season = season or get_current_season()
        return Pick.get_finalized_for_week(validate_week(week), season)

    def has_finalized(self, user_id, week, season=None):
        pick = self.get(user_id, week, season=season)
        return bool(pick and pick.is_finalized)

    def list_weeks_with_finalized_picks(self, user_id=None, season=None):
        season = season or get_current_season()
        query = db.session.query(Pick.week).filter(
            Pick.season == season, Pick.is_finalized.is_(True)
        )
        if user_id is not None:
            query = query.filter(Pick.user_id == user_id)
        return sorted({row.week for row in query.distinct().all()})

    def list_prop_bets(self, status=None, season=None):
        season = season or get_current_season()
        query = Pick.query.filter(
            Pick.season == season, Pick.prop_bet.isnot(None), Pick.prop_bet != ""
        )
        picks = query.order_by(Pick.week, Pick.created_at.desc()).all()
        if status:
            picks = [p for p in picks if (p.prop_bet_status or PROP_BET_PENDING) == status]
        return picks

    # Writes

    def upsert(self, user_id, week, payload, season=None):
        """
        Create or update the (user, week) pick.

        Selections for games outside their edit window are dropped silently;
        everything else that is wrong with the payload rejects the write.
        """
        season = season or get_current_season()
        week = validate_week(week)
        if not isinstance(payload, dict):
            raise ValidationError("Payload must be an object")

        games = Game.get_games_for_week(week, season)
        if not games:
            raise ValidationError(f"No games found for week {week}", field="week")

        policy = EditWindowPolicy(now=self.now)
        if not policy.can_edit_week(games):
            raise ConflictError(
                f"Picks for week {week} are locked", reason=ConflictError.LOCKED
            )

        try:
            return self._write(user_id, week, season, payload, games, policy)
        except TransientStoreError as e:
            logger.warning(
                f"Transient store error saving pick user={user_id} week={week}: {e}; retrying once"
            )
            try:
                return self._write(user_id, week, season, payload, games, policy)
            except TransientStoreError as retry_error:
                logger.error(
                    f"Retry failed saving pick user={user_id} week={week}: {retry_error}"
                )
                raise ConflictError(
                    "Your pick could not be saved because of a concurrent update. Please try again.",
                    reason=ConflictError.CLAIMED,
                )

    def _write(self, *args):
        try:
            return self._apply(*args)
        except PickemError:
            db.session.rollback()
            raise

    def _apply(self, user_id, week, season, payload, games, policy):
        existing = Pick.get_for_user_week(user_id, week, season)
        was_finalized = bool(existing and existing.is_finalized)
        finalize = bool(_field(payload, "isFinalized", "is_finalized") is True)

        if finalize and not was_finalized and not policy.can_submit_week(games):
            raise ConflictError(
                f"No games left to pick in week {week}", reason=ConflictError.LOCKED
            )

        games_by_id = {game.game_id: game for game in games}
        editable_ids = policy.editable_game_ids(games)

        submitted = normalize_selections(_field(payload, "selections", "selections"))
        filtered = {}
        for game_id, team in submitted.items():
            game = games_by_id.get(game_id)
            if game is None or game_id not in editable_ids:
                logger.debug(f"Dropping locked or unknown selection {game_id} for user {user_id}")
                continue
            if team not in game.teams:
                raise ValidationError(
                    f"{team} is not playing in game {game_id}", field="selections"
                )
            filtered[game_id] = team

        if existing is None:
            pick = Pick(user_id=user_id, week=week, season=season, selections={}, outcomes={})
            db.session.add(pick)
        else:
            pick = existing

        previous_selections = dict(pick.selections or {})
        merged = dict(previous_selections)
        merged.update(filtered)

        lock_value = _field(payload, "lockOfWeek", "lock_of_week")
        if lock_value is not _MISSING:
            lock = _clean_text(lock_value, "lockOfWeek")
            lock = lock.upper() if lock else None
            if lock != pick.lock_of_week:
                self._check_lock_change(pick, games_by_id, editable_ids)
            if lock is not None and lock not in filtered.values():
                # An unchanged lock may stand on a game that has already locked
                lock_game_id = pick.lock_game_id() if lock == pick.lock_of_week else None
                if lock_game_id is None or lock_game_id in editable_ids:
                    raise ValidationError(
                        "Lock of the Week must be one of your selected teams",
                        field="lockOfWeek",
                    )
            pick.lock_of_week = lock

        if pick.lock_of_week and pick.lock_of_week not in merged.values():
            raise ValidationError(
                "Lock of the Week must be one of your selected teams; "
                "change or clear it before switching that game",
                field="lockOfWeek",
            )

        scorer_value = _field(payload, "touchdownScorer", "touchdown_scorer")
        if scorer_value is not _MISSING:
            pick.touchdown_scorer = _clean_text(scorer_value, "touchdownScorer")

        prop_value = _field(payload, "propBet", "prop_bet")
        if prop_value is not _MISSING:
            prop_bet = _clean_text(prop_value, "propBet")
            if prop_bet is None:
                pick.prop_bet = None
                pick.prop_bet_odds = None
                pick.prop_bet_status = None
                pick.prop_bet_reviewed_at = None
                pick.prop_bet_reviewed_by = None
            elif prop_bet != pick.prop_bet:
                pick.prop_bet = prop_bet
                pick.prop_bet_status = PROP_BET_PENDING
                pick.prop_bet_reviewed_at = None
                pick.prop_bet_reviewed_by = None

        odds_value = _field(payload, "propBetOdds", "prop_bet_odds")
        if odds_value is not _MISSING and pick.prop_bet:
            pick.prop_bet_odds = _clean_text(odds_value, "propBetOdds")

        # JSON columns are replaced, never mutated in place
        pick.selections = merged

        if finalize and not was_finalized:
            pick.is_finalized = True
            pick.finalized_at = self.now

        try:
            db.session.flush()
            if pick.is_finalized:
                self._record_touchdown_usage(pick)
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise self._conflict_from_integrity_error(e)
        except OperationalError as e:
            db.session.rollback()
            raise TransientStoreError(f"Store contention: {e.orig}")

        logger.info(
            f"Saved pick user={user_id} week={week} finalized={pick.is_finalized} "
            f"selections={len(merged)} dropped={len(submitted) - len(filtered)}"
        )

        event_type = PICK_FINALIZE if pick.is_finalized and not was_finalized else PICK_UPDATE
        self.channel.publish(make_event(event_type, user_id=user_id, week=week))
        return pick

    def _check_lock_change(self, pick, games_by_id, editable_ids):
        """The lock cannot move once its game has left the edit window"""
        lock_game_id = pick.lock_game_id()
        if lock_game_id and lock_game_id in games_by_id and lock_game_id not in editable_ids:
            raise ConflictError(
                "Your Lock of the Week game has already locked",
                reason=ConflictError.LOCKED,
                field="lockOfWeek",
            )

    def _record_touchdown_usage(self, pick):
        """Track season-wide touchdown scorer usage for a finalized pick"""
        stale = UsedTouchdownScorer.query.filter(
            UsedTouchdownScorer.user_id == pick.user_id,
            UsedTouchdownScorer.season == pick.season,
            UsedTouchdownScorer.week == pick.week,
        )
        if pick.touchdown_scorer:
            stale = stale.filter(UsedTouchdownScorer.player_id != pick.touchdown_scorer)
        for usage in stale.all():
            db.session.delete(usage)
        db.session.flush()

        if not pick.touchdown_scorer:
            return

        usage = UsedTouchdownScorer.query.filter_by(
            user_id=pick.user_id, season=pick.season, player_id=pick.touchdown_scorer
        ).first()
        if usage is None:
            db.session.add(
                UsedTouchdownScorer(
                    user_id=pick.user_id,
                    season=pick.season,
                    player_id=pick.touchdown_scorer,
                    week=pick.week,
                )
            )
            db.session.flush()
        elif usage.week != pick.week:
            earlier_games = Game.get_games_for_week(usage.week, pick.season)
            policy = EditWindowPolicy(now=self.now)
            if any(policy.is_started(game) for game in earlier_games):
                raise ConflictError(
                    f"You have already used this player as a TD scorer in week {usage.week}. "
                    "Each player can only be selected once per season.",
                    reason=ConflictError.CLAIMED,
                    field="touchdownScorer",
                )
            # The earlier week is still open, so the claim moves here
            usage.week = pick.week
            db.session.flush()

    @staticmethod
    def _conflict_from_integrity_error(error):
        message = str(getattr(error, "orig", error))
        if "used_touchdown_scorers" in message or "unique_user_season_td_scorer" in message:
            return ConflictError(
                "You have already used this player as a TD scorer this season.",
                reason=ConflictError.CLAIMED,
                field="touchdownScorer",
            )
        if "lock_of_week" in message or "uq_pick_week_lock" in message:
            return ConflictError(
                "That Lock of the Week has already been taken this week by another user.",
                reason=ConflictError.CLAIMED,
                field="lockOfWeek",
            )
        if "touchdown_scorer" in message or "uq_pick_week_td_scorer" in message:
            return ConflictError(
                "That TD Scorer has already been taken this week by another user.",
                reason=ConflictError.CLAIMED,
                field="touchdownScorer",
            )
        # Two requests created the same (user, week) document at once
        return TransientStoreError(f"Concurrent pick write: {message}")

    def delete(self, user_id, week, season=None):
        """Delete a draft pick; submitted picks and locked weeks are kept"""
        season = season or get_current_season()
        week = validate_week(week)
        pick = Pick.get_for_user_week(user_id, week, season)
        if pick is None:
            return False
        if pick.is_finalized:
            raise ConflictError(
                "Cannot delete a submitted pick for this week",
                reason=ConflictError.LOCKED,
            )
        games = Game.get_games_for_week(week, season)
        if not EditWindowPolicy(now=self.now).can_edit_week(games):
            raise ConflictError(
                f"Picks for week {week} are locked", reason=ConflictError.LOCKED
            )

        db.session.delete(pick)
        db.session.commit()
        logger.info(f"Deleted draft pick user={user_id} week={week}")
        self.channel.publish(make_event(PICK_UPDATE, user_id=user_id, week=week))
        return True

    def set_prop_bet_status(self, pick_id, status, reviewer_id=None):
        """Admin moderation of a prop bet; returns the pick or None if absent"""
        if status not in (PROP_BET_APPROVED, PROP_BET_REJECTED):
            raise ValidationError(
                "Status must be 'approved' or 'rejected'", field="status"
            )
        pick = db.session.get(Pick, pick_id)
        if pick is None or not pick.prop_bet:
            return None

        pick.prop_bet_status = status
        pick.prop_bet_reviewed_at = self.now
        pick.prop_bet_reviewed_by = reviewer_id
        db.session.commit()

        logger.info(
            f"Prop bet on pick {pick_id} (user {pick.user_id}, week {pick.week}) {status} by {reviewer_id}"
        )
        self.channel.publish(make_event(PICK_UPDATE, user_id=pick.user_id, week=pick.week))
        return pick
