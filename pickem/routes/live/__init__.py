from flask import Blueprint

bp = Blueprint("live", __name__)

from pickem.routes.live import routes  # noqa: F401, E402
