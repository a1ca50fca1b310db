# rental_admin/shipping/routes.py
from flask import request
from flask_jwt_extended import jwt_required

from . import bp
from ..services import shipping_service
from ..utils.api import err, ok, paginate
from ..utils.decorators import staff_required
from ..utils.money import D
from ..utils.parsing import parse_bool


@bp.get("/methods")
@staff_required
def list_methods():
    enabled = request.args.get("enabled")
    q = shipping_service.list_methods(
        enabled=parse_bool(enabled) if enabled not in (None, "") else None,
        search=(request.args.get("search") or "").strip() or None,
    )
    return ok(paginate(q, request.args.get("page"), request.args.get("limit"), lambda m: m.as_api()))


@bp.post("/methods")
@staff_required
def create_method():
    data = request.get_json(silent=True) or {}
    m = shipping_service.create_method(data)
    return ok(m.as_api(), "Shipping method created", 201)


@bp.get("/methods/available")
@jwt_required()
def available_methods():
    try:
        subtotal = D(request.args.get("subtotal") or 0)
    except ValueError:
        return err("subtotal must be numeric", 400)
    region = (request.args.get("region") or "").strip() or None
    return ok(shipping_service.available_methods(subtotal, region))


@bp.get("/methods/<int:mid>")
@staff_required
def get_method(mid):
    return ok(shipping_service.get_method_or_404(mid).as_api())


@bp.put("/methods/<int:mid>")
@staff_required
def update_method(mid):
    m = shipping_service.get_method_or_404(mid)
    data = request.get_json(silent=True) or {}
    return ok(shipping_service.update_method(m, data).as_api(), "Shipping method updated")


@bp.delete("/methods/<int:mid>")
@staff_required
def delete_method(mid):
    m = shipping_service.get_method_or_404(mid)
    shipping_service.delete_method(m)
    return ok({"id": mid}, "Shipping method deleted")


@bp.get("/stats")
@staff_required
def shipping_stats():
    return ok(shipping_service.shipping_stats())
