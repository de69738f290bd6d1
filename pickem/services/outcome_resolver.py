"""
Outcome resolution for finalized picks.

A pass snapshots the week's games and finalized picks, works out the
against-the-spread winner of every completed game and writes won/lost into
each pick's outcomes. Passes are full re-scans and safe to repeat; a pick
finalized mid-pass is picked up by the next one.
"""

import logging

from pickem import db
from pickem.errors import UpstreamDataError
from pickem.models import Game, Pick
from pickem.models.pick import OUTCOME_LOST, OUTCOME_WON
from pickem.services.game_clock import is_completed
from pickem.services.live_channel import PICK_UPDATE, make_event
from pickem.utils.cache_utils import LEADERBOARD, invalidate_model_cache
from pickem.utils.timezone_utils import get_current_season, utc_now

logger = logging.getLogger(__name__)

PUSH = "PUSH"


def game_winner(game):
    """
    Against-the-spread winner of a game.

    Falls back to the straight-up winner when the feed did not report spread
    coverage. Returns None for a push or a tie; raises UpstreamDataError when
    the result is missing or names a team that is not playing.
    """
    coverage = (game.spread_coverage_winner or "").strip().upper()
    if coverage == PUSH:
        return None
    if coverage:
        if coverage not in game.teams:
            raise UpstreamDataError(
                f"Spread winner {coverage} is not playing in {game.game_id}",
                game_id=game.game_id,
            )
        return coverage

    if game.home_score is None or game.away_score is None:
        raise UpstreamDataError(
            f"No result reported for completed game {game.game_id}",
            game_id=game.game_id,
        )
    return game.straight_up_winner


class ResolutionSummary:
    def __init__(self, week, season):
        self.week = week
        self.season = season
        self.games_resolved = 0
        self.games_pending = 0
        self.games_unresolved = []
        self.picks_examined = 0
        self.picks_updated = 0
        self.users_updated = []
        self.errors = 0

    def to_dict(self):
        return {
            "week": self.week,
            "season": self.season,
            "games_resolved": self.games_resolved,
            "games_pending": self.games_pending,
            "games_unresolved": list(self.games_unresolved),
            "picks_examined": self.picks_examined,
            "picks_updated": self.picks_updated,
            "users_updated": list(self.users_updated),
            "errors": self.errors,
        }


class OutcomeResolver:
    def __init__(self, channel=None, now=None):
        self._channel = channel
        self._now = now

    @property
    def channel(self):
        if self._channel is None:
            from pickem import live_channel

            self._channel = live_channel
        return self._channel

    def winners_for_week(self, games, summary, now):
        """game_id -> winning team for every completed, decidable game"""
        winners = {}
        for game in games:
            try:
                if not is_completed(game, now=now):
                    summary.games_pending += 1
                    continue
                winner = game_winner(game)
                if winner is None:
                    logger.info(f"Game {game.game_id} is a push/tie; leaving picks unresolved")
                    summary.games_unresolved.append(game.game_id)
                    continue
                winners[game.game_id] = winner
                summary.games_resolved += 1
            except UpstreamDataError as e:
                logger.warning(f"Cannot resolve game {game.game_id}: {e}")
                summary.games_unresolved.append(game.game_id)
            except Exception as e:
                logger.error(f"Error resolving game {game.game_id}: {e}", exc_info=True)
                summary.errors += 1
        return winners

    def resolve_week(self, week, season=None):
        season = season or get_current_season()
        now = self._now or utc_now()
        summary = ResolutionSummary(week, season)

        games = Game.get_games_for_week(week, season)
        picks = Pick.get_finalized_for_week(week, season)
        winners = self.winners_for_week(games, summary, now)

        changed_users = []
        for pick in picks:
            summary.picks_examined += 1
            try:
                outcomes = dict(pick.outcomes or {})
                changed = False
                for game_id, team in (pick.selections or {}).items():
                    winner = winners.get(game_id)
                    if winner is None:
                        continue
                    outcome = OUTCOME_WON if team == winner else OUTCOME_LOST
                    if outcomes.get(game_id) != outcome:
                        if game_id in outcomes:
                            logger.info(
                                f"Correcting outcome for user {pick.user_id} game {game_id}: "
                                f"{outcomes[game_id]} -> {outcome}"
                            )
                        outcomes[game_id] = outcome
                        changed = True
                if changed:
                    pick.outcomes = outcomes
                    changed_users.append(pick.user_id)
            except Exception as e:
                logger.error(
                    f"Error resolving pick {pick.id} for user {pick.user_id}: {e}",
                    exc_info=True,
                )
                summary.errors += 1

        if changed_users:
            try:
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            # Season standings read wins and losses straight from outcomes
            invalidate_model_cache(LEADERBOARD)

        summary.picks_updated = len(changed_users)
        summary.users_updated = changed_users

        for user_id in changed_users:
            self.channel.publish(make_event(PICK_UPDATE, user_id=user_id, week=week))

        logger.info(
            f"Resolved week {week} ({season}): {summary.games_resolved} games decided, "
            f"{summary.games_pending} pending, {summary.picks_updated}/{summary.picks_examined} picks updated"
        )
        return summary
