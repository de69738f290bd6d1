from datetime import datetime, timezone

from pickem import db


class Game(db.Model):
    __tablename__ = "games"

    # Upstream identity, e.g. "20250914_KC@BUF"
    game_id = db.Column(db.String(64), primary_key=True)

    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Teams (upstream team codes)
    home_team = db.Column(db.String(8), nullable=False)
    away_team = db.Column(db.String(8), nullable=False)

    # Raw upstream timing; kickoff is derived on read
    scheduled_date = db.Column(db.String(8), nullable=False)
    scheduled_time_text = db.Column(db.String(16))

    # Upstream status string, unreliable
    raw_status = db.Column(db.String(64))

    # Results
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)
    spread_coverage_winner = db.Column(db.String(8))
    scoring_plays = db.Column(db.JSON, default=list)
    player_stats = db.Column(db.JSON, default=list)

    # Timestamps
    last_synced_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("idx_game_season_week", "season", "week"),
        db.CheckConstraint("home_team != away_team", name="different_teams"),
    )

    def __repr__(self):
        return f"<Game {self.away_team} @ {self.home_team} Week {self.week}>"

    @property
    def teams(self):
        return (self.home_team, self.away_team)

    @property
    def straight_up_winner(self):
        """Winner by score (None if scores missing or tied)"""
        if self.home_score is None or self.away_score is None:
            return None
        if self.home_score == self.away_score:
            return None
        return self.home_team if self.home_score > self.away_score else self.away_team

    def touchdown_scorer_ids(self):
        """Player ids credited with a touchdown in this game's scoring plays"""
        scorers = set()
        for play in self.scoring_plays or []:
            play_type = str(play.get("type") or "").lower()
            player_id = play.get("playerID")
            if not player_id:
                continue
            if "touchdown" in play_type or play_type == "td" or play_type.endswith("_td"):
                scorers.add(str(player_id))
        return scorers

    def player_stat_line(self, player_id):
        """Box score row for a player, or None"""
        for row in self.player_stats or []:
            if str(row.get("playerID")) == str(player_id):
                return row
        return None

    def classify(self, now=None):
        """Kickoff instant and lifecycle state, recomputed on every call"""
        from pickem.services.game_clock import classify

        return classify(self, now=now)

    @staticmethod
    def get_games_for_week(week, season):
        """Get all games for a specific week ordered by schedule"""
        return (
            Game.query.filter_by(season=season, week=week)
            .order_by(Game.scheduled_date, Game.game_id)
            .all()
        )

    @staticmethod
    def current_week(season, now=None):
        """Earliest week with a game that has not completed, else the last week"""
        from pickem.services.game_clock import is_completed

        games = Game.query.filter_by(season=season).order_by(Game.week).all()
        if not games:
            return None
        for game in games:
            if not is_completed(game, now=now):
                return game.week
        return games[-1].week

    def to_dict(self, now=None):
        """Convert game to dictionary for API responses"""
        from pickem.services.edit_window import EditWindowPolicy
        from pickem.services.game_clock import kickoff_in_app_timezone
        from pickem.utils.timezone_utils import format_game_time

        classification = self.classify(now=now)
        policy = EditWindowPolicy(now=now)
        kickoff = classification.kickoff_instant
        local_kickoff = kickoff_in_app_timezone(self)

        return {
            "game_id": self.game_id,
            "season": self.season,
            "week": self.week,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "kickoff": kickoff.isoformat() if kickoff else None,
            "kickoff_local": local_kickoff.isoformat() if local_kickoff else None,
            "kickoff_display": format_game_time(kickoff),
            "status": classification.lifecycle_state.value,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "spread_coverage_winner": self.spread_coverage_winner,
            "is_editable": policy.can_edit_game(self),
            "has_started": policy.is_started(self),
        }
