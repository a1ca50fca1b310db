# rental_admin/services/shipping_service.py
import logging

from sqlalchemy import func, or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..model import Order, ShippingMethod
from ..utils.money import D, round_money
from ..utils.parsing import parse_bool, parse_opt_int

logger = logging.getLogger(__name__)

SHIPPING_TYPES = ("free", "flat_rate", "local_pickup", "calculated", "express")

DEFAULT_METHODS = [
    {
        "name": "Free Shipping",
        "description": "Free shipping on orders over $50.000",
        "cost": 0, "shipping_type": "free", "min_amount": 50000,
        "available_regions": ["RM", "V", "VIII"],
        "estimated_days_min": 3, "estimated_days_max": 5,
    },
    {
        "name": "Standard Shipping",
        "description": "Standard shipping to all of Chile",
        "cost": 5000, "shipping_type": "flat_rate",
        "estimated_days_min": 2, "estimated_days_max": 4,
    },
    {
        "name": "Express Shipping",
        "description": "Delivery within 24 hours",
        "cost": 12000, "shipping_type": "express",
        "available_regions": ["RM"],
        "estimated_days_min": 1, "estimated_days_max": 1,
    },
    {
        "name": "Store Pickup",
        "description": "Pick up your order at the store",
        "cost": 0, "shipping_type": "local_pickup",
        "available_regions": ["RM"],
        "estimated_days_min": 0, "estimated_days_max": 1,
        "requires_address": False,
    },
]


def _regions(value, field):
    if value in (None, ""):
        return None
    if isinstance(value, str):
        value = [r.strip() for r in value.split(",")]
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of region codes")
    cleaned = [str(r).strip().upper() for r in value if str(r).strip()]
    return cleaned or None


def _apply_payload(m: ShippingMethod, data: dict, partial: bool):
    if "name" in data or not partial:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required")
        m.name = name

    if "shipping_type" in data or not partial:
        stype = (data.get("shipping_type") or "").strip().lower()
        if stype not in SHIPPING_TYPES:
            raise ValidationError(f"shipping_type must be one of {', '.join(SHIPPING_TYPES)}")
        m.shipping_type = stype

    if "cost" in data or not partial:
        try:
            cost = round_money(data.get("cost"))
        except ValueError:
            raise ValidationError("cost must be numeric")
        if cost < 0:
            raise ValidationError("cost cannot be negative")
        m.cost = cost

    if "description" in data:
        m.description = data.get("description")
    if "enabled" in data:
        m.enabled = parse_bool(data.get("enabled"), default=True)
    for field in ("requires_address", "requires_phone"):
        if field in data:
            setattr(m, field, parse_bool(data.get(field), default=True))

    for field in ("min_amount", "max_amount"):
        if field in data:
            raw = data.get(field)
            if raw in (None, ""):
                setattr(m, field, None)
                continue
            try:
                setattr(m, field, round_money(raw))
            except ValueError:
                raise ValidationError(f"{field} must be numeric")
    if m.min_amount is not None and m.max_amount is not None and D(m.min_amount) > D(m.max_amount):
        raise ValidationError("min_amount cannot exceed max_amount")

    for field in ("available_regions", "excluded_regions"):
        if field in data:
            setattr(m, field, _regions(data.get(field), field))

    for field in ("estimated_days_min", "estimated_days_max"):
        if field in data or not partial:
            value = parse_opt_int(data.get(field))
            if value is None or value < 0:
                raise ValidationError(f"{field} must be a non-negative integer")
            setattr(m, field, value)
    if m.estimated_days_min > m.estimated_days_max:
        raise ValidationError("estimated_days_min cannot exceed estimated_days_max")


def create_method(data: dict) -> ShippingMethod:
    m = ShippingMethod(enabled=True, requires_address=True, requires_phone=True)
    _apply_payload(m, data, partial=False)
    db.session.add(m)
    db.session.commit()
    logger.info("shipping method created id=%s name=%s", m.id, m.name)
    return m


def update_method(m: ShippingMethod, data: dict) -> ShippingMethod:
    _apply_payload(m, data, partial=True)
    db.session.commit()
    logger.info("shipping method updated id=%s", m.id)
    return m


def delete_method(m: ShippingMethod):
    # orders keep their shipping_lines snapshot; only the link is dropped
    Order.query.filter(Order.shipping_method_id == m.id).update(
        {Order.shipping_method_id: None}, synchronize_session=False
    )
    db.session.delete(m)
    db.session.commit()
    logger.info("shipping method deleted id=%s", m.id)


def get_method_or_404(method_id) -> ShippingMethod:
    m = db.session.get(ShippingMethod, method_id)
    if not m:
        raise NotFoundError("Shipping method not found")
    return m


def list_methods(enabled=None, search=None):
    q = ShippingMethod.query
    if enabled is not None:
        q = q.filter(ShippingMethod.enabled == enabled)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(ShippingMethod.name.ilike(like), ShippingMethod.description.ilike(like)))
    return q.order_by(ShippingMethod.id.asc())


def validate_shipping_method(method: ShippingMethod, cart_total, region=None):
    """Return (is_valid, message) for using `method` on a cart of `cart_total`."""
    cart_total = D(cart_total or 0)
    if not method.enabled:
        return False, "Shipping method not available"
    if method.min_amount is not None and D(method.min_amount) > 0 and cart_total < D(method.min_amount):
        return False, f"Minimum amount required: ${D(method.min_amount):,.0f}"
    if method.max_amount is not None and D(method.max_amount) > 0 and cart_total > D(method.max_amount):
        return False, f"Maximum amount allowed: ${D(method.max_amount):,.0f}"
    if region:
        region = str(region).strip().upper()
        if method.available_regions and region not in method.available_regions:
            return False, "Not available in your region"
        if method.excluded_regions and region in method.excluded_regions:
            return False, "Not available in your region"
    return True, None


def shipping_cost(method: ShippingMethod):
    if method.shipping_type in ("free", "local_pickup"):
        return round_money(0)
    return round_money(method.cost)


def delivery_estimate(method: ShippingMethod):
    lo, hi = method.estimated_days_min, method.estimated_days_max
    if lo == hi:
        return f"{lo} {'day' if lo == 1 else 'days'}"
    return f"{lo}-{hi} days"


def shipping_line(method: ShippingMethod, address=None):
    line = {
        "method_id": method.id,
        "method_title": method.name,
        "method_type": method.shipping_type,
        "total": float(shipping_cost(method)),
        "meta_data": {
            "estimated_delivery": delivery_estimate(method),
            "tracking_number": None,
        },
    }
    if address:
        line["meta_data"]["shipping_address"] = address
    return line


def available_methods(cart_total, region=None):
    out = []
    for m in ShippingMethod.query.filter(ShippingMethod.enabled.is_(True)).order_by(ShippingMethod.id):
        valid, _ = validate_shipping_method(m, cart_total, region)
        if valid:
            out.append({**m.as_api(), "effective_cost": float(shipping_cost(m)),
                        "estimated_delivery": delivery_estimate(m)})
    return out


def shipping_stats():
    total_methods = db.session.query(func.count(ShippingMethod.id)).scalar() or 0
    active_methods = (db.session.query(func.count(ShippingMethod.id))
                      .filter(ShippingMethod.enabled.is_(True)).scalar()) or 0

    shipped = Order.query.filter(Order.shipping_method_id.isnot(None))
    total_shipments = shipped.count()
    delivered = shipped.filter(Order.status == "completed").count()
    pending = shipped.filter(Order.status.in_(("pending", "processing", "on-hold"))).count()
    revenue = (db.session.query(func.coalesce(func.sum(Order.shipping_total), 0))
               .filter(Order.status.notin_(("cancelled", "failed", "refunded"))).scalar())

    return {
        "total_methods": total_methods,
        "active_methods": active_methods,
        "total_shipments": total_shipments,
        "pending_shipments": pending,
        "delivered_shipments": delivered,
        "total_revenue": float(round_money(revenue or 0)),
        "delivery_rate": round(delivered / total_shipments * 100, 1) if total_shipments else 0.0,
    }


def seed_default_methods():
    created = 0
    for defaults in DEFAULT_METHODS:
        if ShippingMethod.query.filter(ShippingMethod.name == defaults["name"]).first():
            continue
        db.session.add(ShippingMethod(**{"enabled": True, "requires_address": True,
                                         "requires_phone": True, **defaults}))
        created += 1
    db.session.commit()
    return created
