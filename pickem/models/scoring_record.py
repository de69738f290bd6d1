from datetime import datetime, timezone

from pickem import db


class ScoringRecord(db.Model):
    __tablename__ = "scoring_records"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    game_id = db.Column(db.String(64), db.ForeignKey("games.game_id"), nullable=False)
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Spread pick
    spread_team = db.Column(db.String(8))
    spread_correct = db.Column(db.Boolean)
    spread_points = db.Column(db.Integer, nullable=False, default=0)

    # Lock of the week
    lock_team = db.Column(db.String(8))
    lock_correct = db.Column(db.Boolean)
    lock_points = db.Column(db.Integer, nullable=False, default=0)

    # Touchdown scorer
    touchdown_player = db.Column(db.String(32))
    touchdown_correct = db.Column(db.Boolean)
    touchdown_points = db.Column(db.Integer, nullable=False, default=0)

    # Prop bet
    prop_bet_description = db.Column(db.Text)
    prop_bet_correct = db.Column(db.Boolean)
    prop_bet_points = db.Column(db.Integer, nullable=False, default=0)

    total_points = db.Column(db.Integer, nullable=False, default=0)
    fantasy_points = db.Column(db.Float, nullable=False, default=0.0)

    # Denormalized game context
    home_team = db.Column(db.String(8))
    away_team = db.Column(db.String(8))
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)
    winner = db.Column(db.String(8))
    is_final = db.Column(db.Boolean, nullable=False, default=False)

    evaluated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    user = db.relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        db.UniqueConstraint("user_id", "game_id", name="unique_user_game_score"),
        db.Index("idx_score_season_week", "season", "week"),
    )

    # Columns compared to decide whether an upsert changed anything
    CONTENT_FIELDS = (
        "season",
        "week",
        "spread_team",
        "spread_correct",
        "spread_points",
        "lock_team",
        "lock_correct",
        "lock_points",
        "touchdown_player",
        "touchdown_correct",
        "touchdown_points",
        "prop_bet_description",
        "prop_bet_correct",
        "prop_bet_points",
        "total_points",
        "fantasy_points",
        "home_team",
        "away_team",
        "home_score",
        "away_score",
        "winner",
        "is_final",
    )

    def __repr__(self):
        return f"<ScoringRecord user_id={self.user_id} game={self.game_id} points={self.total_points}>"

    def content(self):
        return {name: getattr(self, name) for name in self.CONTENT_FIELDS}

    def to_dict(self):
        data = {"user_id": self.user_id, "game_id": self.game_id}
        data.update(self.content())
        data["evaluated_at"] = self.evaluated_at.isoformat() if self.evaluated_at else None
        return data
