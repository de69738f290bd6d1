"""
Request identity.

Authentication happens in the gateway in front of this service; it forwards
the authenticated user's id in a trusted header. Flask-Login turns that header
into current_user for the views.
"""

import logging
from functools import wraps

from flask import abort, current_app
from flask_login import current_user

from pickem import db, login_manager
from pickem.models import User

logger = logging.getLogger(__name__)


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.request_loader
def load_user_from_request(request):
    header = current_app.config.get("AUTH_USER_HEADER", "X-User-Id")
    raw_id = request.headers.get(header)
    if not raw_id:
        return None
    try:
        user = db.session.get(User, int(raw_id))
    except ValueError:
        logger.warning(f"Ignoring malformed {header} header: {raw_id!r}")
        return None
    if user is None or not user.is_active:
        return None
    return user


def admin_required(f):
    """Restrict a view to site admins"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        if not current_user.is_admin:
            abort(403)
        return f(*args, **kwargs)

    return decorated_function
