import os

from pickem import create_app, db, socketio
from pickem.models import Game, Pick, ScoringRecord, User

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Game": Game,
        "Pick": Pick,
        "ScoringRecord": ScoringRecord,
    }


if __name__ == "__main__":
    socketio.run(
        app,
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 5000)),
        debug=app.config.get("DEBUG", False),
        allow_unsafe_werkzeug=True,
    )
