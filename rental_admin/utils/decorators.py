# ------- rental_admin/utils/decorators.py -------
from functools import wraps

from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ..extensions import db
from ..utils.api import err
from ..model.user import User

ROLE_LEVEL = {"customer": 1, "manager": 2, "admin": 3}


def current_user():
    verify_jwt_in_request()
    uid = get_jwt_identity()
    try:
        uid = int(uid)
    except (TypeError, ValueError):
        uid = None
    return db.session.get(User, uid) if uid else None


def role_at_least(min_role: str, message: str | None = None):  # admin > manager > customer
    min_level = ROLE_LEVEL[min_role]
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            u = current_user()
            if not u:
                return err("Unauthorized", 401)
            if ROLE_LEVEL.get(u.role, 0) < min_level:
                return err(message or "Forbidden", 403)
            return fn(*args, **kwargs)
        return wrapper
    return decorator


staff_required = role_at_least("manager")
