from datetime import datetime, timezone

from pickem import db

OUTCOME_WON = "won"
OUTCOME_LOST = "lost"

PROP_BET_PENDING = "pending"
PROP_BET_APPROVED = "approved"
PROP_BET_REJECTED = "rejected"
PROP_BET_STATUSES = (PROP_BET_PENDING, PROP_BET_APPROVED, PROP_BET_REJECTED)


class Pick(db.Model):
    __tablename__ = "picks"

    id = db.Column(db.Integer, primary_key=True)

    # Pick identification: one document per user per week
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # gameID -> team code
    selections = db.Column(db.JSON, nullable=False, default=dict)

    # Special picks
    lock_of_week = db.Column(db.String(8))
    touchdown_scorer = db.Column(db.String(32))
    prop_bet = db.Column(db.Text)
    prop_bet_odds = db.Column(db.String(32))
    prop_bet_status = db.Column(db.String(16))
    prop_bet_reviewed_at = db.Column(db.DateTime)
    prop_bet_reviewed_by = db.Column(db.Integer, db.ForeignKey("users.id"))

    is_finalized = db.Column(db.Boolean, nullable=False, default=False)
    finalized_at = db.Column(db.DateTime)

    # gameID -> "won" | "lost"; written only by the outcome resolver
    outcomes = db.Column(db.JSON, nullable=False, default=dict)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", foreign_keys=[user_id])

    # Scarce picks are claimed through partial unique indexes so the database
    # decides the winner when two finalized submissions race.
    __table_args__ = (
        db.UniqueConstraint("user_id", "season", "week", name="unique_user_week_pick"),
        db.Index(
            "uq_pick_week_lock",
            "season",
            "week",
            "lock_of_week",
            unique=True,
            sqlite_where=db.text("is_finalized AND lock_of_week IS NOT NULL"),
            postgresql_where=db.text("is_finalized AND lock_of_week IS NOT NULL"),
        ),
        db.Index(
            "uq_pick_week_td_scorer",
            "season",
            "week",
            "touchdown_scorer",
            unique=True,
            sqlite_where=db.text("is_finalized AND touchdown_scorer IS NOT NULL"),
            postgresql_where=db.text("is_finalized AND touchdown_scorer IS NOT NULL"),
        ),
        db.Index("idx_pick_week_finalized", "season", "week", "is_finalized"),
    )

    def __repr__(self):
        return f"<Pick user_id={self.user_id} week={self.week} finalized={self.is_finalized}>"

    @property
    def wins(self):
        return sum(1 for v in (self.outcomes or {}).values() if v == OUTCOME_WON)

    @property
    def losses(self):
        return sum(1 for v in (self.outcomes or {}).values() if v == OUTCOME_LOST)

    def lock_game_id(self):
        """Game whose selection carries the lock of the week"""
        if not self.lock_of_week:
            return None
        for game_id, team in sorted((self.selections or {}).items()):
            if team == self.lock_of_week:
                return game_id
        return None

    @property
    def prop_bet_scores(self):
        return bool(self.prop_bet) and self.prop_bet_status == PROP_BET_APPROVED

    @staticmethod
    def get_for_user_week(user_id, week, season):
        return Pick.query.filter_by(user_id=user_id, week=week, season=season).first()

    @staticmethod
    def get_finalized_for_week(week, season):
        return (
            Pick.query.filter_by(week=week, season=season, is_finalized=True)
            .order_by(Pick.updated_at.desc(), Pick.id)
            .all()
        )

    def to_dict(self, include_user=False):
        """Convert pick to dictionary for API responses"""
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "season": self.season,
            "week": self.week,
            "selections": dict(self.selections or {}),
            "outcomes": dict(self.outcomes or {}),
            "lock_of_week": self.lock_of_week,
            "touchdown_scorer": self.touchdown_scorer,
            "prop_bet": self.prop_bet,
            "prop_bet_odds": self.prop_bet_odds,
            "prop_bet_status": (
                (self.prop_bet_status or PROP_BET_PENDING) if self.prop_bet else None
            ),
            "is_finalized": bool(self.is_finalized),
            "finalized_at": self.finalized_at.isoformat() if self.finalized_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_user and self.user:
            data["user"] = self.user.to_dict()
        return data


class UsedTouchdownScorer(db.Model):
    """A user may name a given player as touchdown scorer once per season"""

    __tablename__ = "used_touchdown_scorers"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    season = db.Column(db.Integer, nullable=False)
    player_id = db.Column(db.String(32), nullable=False)
    week = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "season", "player_id", name="unique_user_season_td_scorer"
        ),
    )

    def __repr__(self):
        return f"<UsedTouchdownScorer user_id={self.user_id} player={self.player_id} week={self.week}>"
