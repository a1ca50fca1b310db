# rental_admin/order/routes.py
from flask import request, send_file
from flask_jwt_extended import get_jwt_identity

from . import bp
from ..services import documents, mailer, order_service
from ..utils.api import err, ok, paginate
from ..utils.dates import parse_bound
from ..utils.decorators import staff_required
from ..utils.parsing import parse_bool, parse_opt_int


def _actor_id():
    return parse_opt_int(get_jwt_identity())


@bp.get("")
@staff_required
def list_orders():
    """
    Query params:
      - page, limit
      - status=pending|processing|on-hold|completed|cancelled|refunded|failed
      - search=name, email, company, project or order id
      - customer_id
      - startDate=YYYY-MM-DD
      - endDate=YYYY-MM-DD (inclusive)
    """
    try:
        start = parse_bound(request.args["startDate"]) if request.args.get("startDate") else None
        end = parse_bound(request.args["endDate"], end_of_day=True) if request.args.get("endDate") else None
    except ValueError as e:
        return err(str(e), 400)

    q = order_service.list_orders(
        status=(request.args.get("status") or "").strip() or None,
        search=(request.args.get("search") or "").strip() or None,
        customer_id=parse_opt_int(request.args.get("customer_id")),
        start=start,
        end=end,
    )
    return ok(paginate(q, request.args.get("page"), request.args.get("limit"), lambda o: o.as_api()))


@bp.post("")
@staff_required
def create_order():
    data = request.get_json(silent=True) or {}
    o = order_service.create_order(data, actor_id=_actor_id())
    return ok(o.as_api(), "Order created", 201)


@bp.post("/calculate")
@staff_required
def calculate_order():
    """Price a draft order; nothing is stored and no coupon is consumed."""
    data = request.get_json(silent=True) or {}
    priced = order_service.price_order(data, customer_id=parse_opt_int(data.get("customer_id")))
    return ok(priced.as_api())


@bp.get("/<int:order_id>")
@staff_required
def get_order(order_id: int):
    o = order_service.get_order_or_404(order_id)
    return ok(o.as_api())


@bp.put("/<int:order_id>")
@staff_required
def update_order(order_id: int):
    o = order_service.get_order_or_404(order_id)
    data = request.get_json(silent=True) or {}
    return ok(order_service.update_order(o, data).as_api(), "Order updated")


@bp.put("/<int:order_id>/status")
@staff_required
def change_status(order_id: int):
    o = order_service.get_order_or_404(order_id)
    data = request.get_json(silent=True) or {}
    o = order_service.change_status(o, data.get("status"), data.get("reason"), _actor_id())
    return ok(o.as_api(), f"Order status is {o.status}")


@bp.get("/<int:order_id>/history")
@staff_required
def order_history(order_id: int):
    o = order_service.get_order_or_404(order_id)
    return ok([h.as_api() for h in o.history])


@bp.post("/<int:order_id>/duplicate")
@staff_required
def duplicate_order(order_id: int):
    o = order_service.get_order_or_404(order_id)
    copy = order_service.duplicate_order(o, actor_id=_actor_id())
    return ok(copy.as_api(), f"Order duplicated from #{o.id}", 201)


@bp.post("/<int:order_id>/generate-budget")
@staff_required
def generate_budget(order_id: int):
    o = order_service.get_order_or_404(order_id)
    data = request.get_json(silent=True) or {}
    result = documents.generate_budget(o, send_email=parse_bool(data.get("send_email"), default=True))
    return ok(result, "Budget generated")


@bp.post("/<int:order_id>/email")
@staff_required
def send_email(order_id: int):
    o = order_service.get_order_or_404(order_id)
    data = request.get_json(silent=True) or {}
    email_type = (data.get("type") or "").strip()
    if not email_type:
        return err("Email type is required", 400)
    sent = mailer.send_order_email(o, email_type, data.get("message"))
    return ok(sent, f"Email sent successfully to {sent['to']}")


@bp.get("/<int:order_id>/documents")
@staff_required
def list_documents(order_id: int):
    o = order_service.get_order_or_404(order_id)
    return ok([d.as_api() for d in o.documents])


@bp.post("/<int:order_id>/documents")
@staff_required
def upload_document(order_id: int):
    o = order_service.get_order_or_404(order_id)
    kind = (request.form.get("kind") or "other").strip().lower()
    doc = documents.save_upload(o, request.files.get("file"), kind)
    return ok(doc.as_api(), "Document uploaded", 201)


@bp.get("/documents/<filename>")
@staff_required
def download_document(filename):
    path = documents.document_path(filename)
    if not path:
        return err("document not found", 404)
    return send_file(path, as_attachment=False, download_name=filename)
