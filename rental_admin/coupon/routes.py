# rental_admin/coupon/routes.py
from flask import request
from flask_jwt_extended import jwt_required

from . import bp
from ..services import coupon_service
from ..utils.api import err, ok, paginate
from ..utils.decorators import staff_required
from ..utils.money import D
from ..utils.parsing import parse_opt_int


@bp.get("")
@staff_required
def list_coupons():
    q = coupon_service.list_coupons(
        status=(request.args.get("status") or "").strip() or None,
        search=(request.args.get("search") or "").strip() or None,
    )
    return ok(paginate(q, request.args.get("page"), request.args.get("limit"), lambda c: c.as_api()))


@bp.post("")
@staff_required
def create_coupon():
    data = request.get_json(silent=True) or {}
    c = coupon_service.create_coupon(data)
    return ok(c.as_api(), "Coupon created", 201)


@bp.get("/<int:cid>")
@staff_required
def get_coupon(cid):
    return ok(coupon_service.get_coupon_or_404(cid).as_api())


@bp.put("/<int:cid>")
@staff_required
def update_coupon(cid):
    c = coupon_service.get_coupon_or_404(cid)
    data = request.get_json(silent=True) or {}
    return ok(coupon_service.update_coupon(c, data).as_api(), "Coupon updated")


@bp.delete("/<int:cid>")
@staff_required
def delete_coupon(cid):
    c = coupon_service.get_coupon_or_404(cid)
    coupon_service.delete_coupon(c)
    return ok({"id": cid}, "Coupon deleted")


@bp.get("/validate/<code>")
@jwt_required()
def validate_coupon(code):
    """
    ?subtotal=65000&userId=7
    Always 200: the verdict lives in data.is_valid.
    """
    try:
        subtotal = D(request.args.get("subtotal") or 0)
    except ValueError:
        return err("subtotal must be numeric", 400)
    if subtotal < 0:
        return err("subtotal cannot be negative", 400)

    user_id = parse_opt_int(request.args.get("userId"))
    return ok(coupon_service.validate_coupon(code, subtotal, user_id))


@bp.get("/stats")
@staff_required
def coupon_stats():
    return ok(coupon_service.coupon_stats())


@bp.get("/debug")
@staff_required
def coupon_debug():
    return ok(coupon_service.coupon_debug())


@bp.get("/history/<int:user_id>")
@staff_required
def coupon_history(user_id):
    return ok(coupon_service.user_coupon_history(user_id))
