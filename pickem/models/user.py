from datetime import datetime, timezone

from flask_login import UserMixin

from pickem import db


class User(UserMixin, db.Model):
    """Read-only view of the user directory; accounts are managed upstream"""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    display_name = db.Column(db.String(100), nullable=False)
    avatar_ref = db.Column(db.String(500))

    is_active = db.Column(db.Boolean, default=True)
    is_admin = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<User {self.display_name}>"

    @staticmethod
    def directory(user_ids):
        """Map of user id -> User for leaderboard and pick display"""
        if not user_ids:
            return {}
        users = User.query.filter(User.id.in_(list(user_ids))).all()
        return {user.id: user for user in users}

    def to_dict(self):
        """Convert user to dictionary for API responses"""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "avatar_ref": self.avatar_ref,
        }
