# rental_admin/analytics/routes.py
from flask import request

from . import bp
from ..extensions import db
from ..model import Product
from ..services import analytics_service
from ..utils.api import err, ok
from ..utils.dates import parse_bound
from ..utils.decorators import staff_required


@bp.get("/advanced")
@staff_required
def advanced():
    try:
        report = analytics_service.get_advanced_analytics(
            request.args.get("startDate") or None,
            request.args.get("endDate") or None,
        )
    except ValueError as e:
        return err(str(e), 400)
    return ok(report)


@bp.get("/product-rentals/<int:product_id>")
@staff_required
def product_rentals(product_id):
    """
    ?startDate=YYYY-MM-DD&endDate=YYYY-MM-DD, both optional.
    Works for deleted products too, since order lines keep their own snapshot.
    """
    try:
        start = parse_bound(request.args["startDate"]) if request.args.get("startDate") else None
        end = parse_bound(request.args["endDate"], end_of_day=True) if request.args.get("endDate") else None
    except ValueError as e:
        return err(str(e), 400)
    if start and end and start > end:
        return err("start date must be before end date", 400)

    rentals = analytics_service.get_product_rentals(product_id, start, end)
    product = db.session.get(Product, product_id)
    return ok({
        "product": {"id": product.id, "name": product.name, "sku": product.sku} if product else None,
        "rentals": rentals,
        "total_rentals": len(rentals),
    })
