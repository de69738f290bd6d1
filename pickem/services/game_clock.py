"""
Game lifecycle classification.

Upstream status strings are unreliable, so lifecycle state is never stored:
it is recomputed from the status text when that text is recognisable and from
the kickoff time otherwise.
"""

import enum
import logging
from collections import namedtuple
from datetime import timedelta

from flask import current_app, has_app_context

from pickem.errors import UpstreamDataError
from pickem.utils.timezone_utils import convert_to_app_timezone, parse_kickoff, utc_now

logger = logging.getLogger(__name__)

DEFAULT_COMPLETION_HOURS = 6
DEFAULT_STARTED_GRACE_MINUTES = 15


class LifecycleState(enum.Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


GameClassification = namedtuple(
    "GameClassification", ["kickoff_instant", "lifecycle_state"]
)

# Checked in order; the first group with a matching substring wins
STATUS_KEYWORDS = (
    (LifecycleState.COMPLETED, ("final", "completed", "finished")),
    (LifecycleState.IN_PROGRESS, ("in_progress", "live", "active")),
    (LifecycleState.SCHEDULED, ("scheduled", "upcoming", "pre")),
)


def completion_window():
    hours = DEFAULT_COMPLETION_HOURS
    if has_app_context():
        hours = current_app.config.get("COMPLETION_HEURISTIC_HOURS", hours)
    return timedelta(hours=hours)


def state_from_status(raw_status):
    """Map an upstream status string to a state, or None if unrecognised"""
    if not raw_status:
        return None
    status = str(raw_status).strip().lower()
    for state, keywords in STATUS_KEYWORDS:
        if any(keyword in status for keyword in keywords):
            return state
    return None


def state_from_kickoff(kickoff, now):
    if kickoff is None or now <= kickoff:
        return LifecycleState.SCHEDULED
    if now > kickoff + completion_window():
        return LifecycleState.COMPLETED
    return LifecycleState.IN_PROGRESS


def kickoff_for(game):
    """Kickoff instant for a game, or None when the schedule data is unusable"""
    try:
        return parse_kickoff(game.scheduled_date, game.scheduled_time_text)
    except UpstreamDataError as e:
        logger.warning(f"Cannot parse kickoff for game {game.game_id}: {e}")
        return None


def classify(game, now=None):
    """
    Classify a game.

    Returns GameClassification(kickoff_instant, lifecycle_state). Never raises
    for bad upstream data; an unparseable kickoff with no usable status
    classifies as scheduled.
    """
    if now is None:
        now = utc_now()

    kickoff = kickoff_for(game)
    state = state_from_status(game.raw_status)
    if state is None:
        state = state_from_kickoff(kickoff, now)

    return GameClassification(kickoff, state)


def is_completed(game, now=None):
    return classify(game, now=now).lifecycle_state is LifecycleState.COMPLETED


def has_started(game, now=None, grace_minutes=None):
    """Kickoff plus the started grace period has passed"""
    if now is None:
        now = utc_now()
    if grace_minutes is None:
        grace_minutes = DEFAULT_STARTED_GRACE_MINUTES
        if has_app_context():
            grace_minutes = current_app.config.get("STARTED_GRACE_MINUTES", grace_minutes)
    kickoff = kickoff_for(game)
    if kickoff is None:
        return False
    return now > kickoff + timedelta(minutes=grace_minutes)


def kickoff_in_app_timezone(game):
    """Kickoff converted to the display timezone, or None"""
    return convert_to_app_timezone(kickoff_for(game))
