import logging

from flask import request
from flask_jwt_extended import create_access_token
from werkzeug.security import check_password_hash, generate_password_hash

from . import bp
from ..extensions import db
from ..model import User
from ..utils.api import err, ok
from ..utils.decorators import ROLE_LEVEL, current_user, staff_required
from ..utils.parsing import parse_bool

logger = logging.getLogger(__name__)

CUSTOMER_TYPES = ("persona", "empresa")


@bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return err("Email and password are required", 400)

    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        logger.warning("failed login for %s", email)
        return err("Invalid email or password", 401)

    token = create_access_token(identity=str(user.id), additional_claims={"role": user.role})
    return ok({"user": user.as_dict(), "token": token}, "You've logged in successfully")


@bp.get("/me")
def me():
    user = current_user()
    if not user:
        return err("user not found", 404)
    return ok({"user": user.as_dict()})


@bp.post("/register")
@staff_required
def register():
    """
    Staff create customer accounts for the order forms.
    Only admins may hand out the manager/admin roles.
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    name = (data.get("name") or "").strip()
    password = data.get("password") or ""

    if not email:
        return err("Email required", 400)
    if password and len(password) < 6:
        return err("Password must be at least 6 characters", 400)
    if User.query.filter_by(email=email).first():
        return err("Email already registered", 409)

    role = (data.get("role") or "customer").strip().lower()
    if role not in ROLE_LEVEL:
        return err("Invalid role", 400)
    if role != "customer" and current_user().role != "admin":
        return err("Only admins can create staff accounts", 403)

    customer_type = (data.get("customer_type") or "persona").strip().lower()
    if customer_type not in CUSTOMER_TYPES:
        return err(f"customer_type must be one of {', '.join(CUSTOMER_TYPES)}", 400)

    user = User(
        email=email,
        name=name or None,
        role=role,
        password_hash=generate_password_hash(password) if password else "",
        customer_type=customer_type,
        city=(data.get("city") or "").strip() or None,
        phone=(data.get("phone") or "").strip() or None,
        terms_accepted=parse_bool(data.get("terms_accepted")),
    )
    db.session.add(user)
    db.session.commit()
    logger.info("user created id=%s role=%s", user.id, user.role)
    return ok({"user": user.as_dict()}, "Account created successfully", 201)
