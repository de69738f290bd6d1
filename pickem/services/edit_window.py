"""
Edit-window policy for picks.

Two windows apply to every game and both are honoured:

* writes are rejected once now is inside the lockout buffer before kickoff
  (EDIT_LOCKOUT_MINUTES, default 10);
* clients disable the selection controls once the game has "started", i.e.
  STARTED_GRACE_MINUTES (default 15) after kickoff.
"""

from datetime import timedelta

from flask import current_app, has_app_context

from pickem.services.game_clock import (
    DEFAULT_STARTED_GRACE_MINUTES,
    LifecycleState,
    classify,
    has_started,
)
from pickem.utils.timezone_utils import utc_now

DEFAULT_LOCKOUT_MINUTES = 10


class EditWindowPolicy:
    def __init__(self, now=None, lockout_minutes=None, started_grace_minutes=None):
        self.now = now or utc_now()

        config = current_app.config if has_app_context() else {}
        if lockout_minutes is None:
            lockout_minutes = config.get("EDIT_LOCKOUT_MINUTES", DEFAULT_LOCKOUT_MINUTES)
        if started_grace_minutes is None:
            started_grace_minutes = config.get(
                "STARTED_GRACE_MINUTES", DEFAULT_STARTED_GRACE_MINUTES
            )
        self.lockout = timedelta(minutes=lockout_minutes)
        self.started_grace = timedelta(minutes=started_grace_minutes)

    def can_edit_game(self, game):
        """True while now is at or before kickoff minus the lockout buffer"""
        kickoff = classify(game, now=self.now).kickoff_instant
        if kickoff is None:
            return False
        return self.now <= kickoff - self.lockout

    def is_started(self, game):
        """Display-side start: kickoff plus the grace period has passed"""
        return has_started(
            game, now=self.now, grace_minutes=self.started_grace.total_seconds() / 60
        )

    def can_edit_week(self, games):
        """False iff every game of the week is completed (or there are none)"""
        if not games:
            return False
        return any(
            classify(game, now=self.now).lifecycle_state is not LifecycleState.COMPLETED
            for game in games
        )

    def can_submit_week(self, games):
        """True iff at least one game is still actionable"""
        return bool(self.editable_game_ids(games))

    def editable_game_ids(self, games):
        """Ids of games that are not completed and still inside the edit window"""
        editable = set()
        for game in games:
            classification = classify(game, now=self.now)
            if classification.lifecycle_state is LifecycleState.COMPLETED:
                continue
            if self.can_edit_game(game):
                editable.add(game.game_id)
        return editable
