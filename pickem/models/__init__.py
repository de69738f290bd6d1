from pickem import db  # noqa: F401 - imported for model imports

from .game import Game
from .pick import Pick, UsedTouchdownScorer
from .scoring_record import ScoringRecord
from .user import User

__all__ = [
    "User",
    "Game",
    "Pick",
    "UsedTouchdownScorer",
    "ScoringRecord",
]
