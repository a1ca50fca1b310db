# rental_admin/services/order_service.py
import logging
from datetime import date
from typing import List, NamedTuple, Optional

from sqlalchemy import String, cast, or_
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ApiError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..model import (
    ORDER_STATUSES,
    Coupon,
    CouponUsage,
    Order,
    OrderItem,
    OrderStatusChange,
    Product,
    ShippingMethod,
    User,
)
from ..utils.dates import utcnow
from ..utils.money import Money, round_money
from ..utils.parsing import parse_bool, parse_opt_int
from . import coupon_service, shipping_service
from .pricing import LineItem, OrderTotals, compute_discount, compute_totals, products_subtotal

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS = {
    "pending": {"processing", "on-hold", "cancelled", "failed"},
    "on-hold": {"pending", "processing", "cancelled", "failed"},
    "processing": {"on-hold", "completed", "cancelled", "failed"},
    "completed": {"refunded"},
    "cancelled": {"pending"},
    "failed": {"pending"},
    "refunded": set(),
}

LOCKED_STATUSES = ("completed", "refunded")

BILLING_FIELDS = {
    "billing_first_name": "billing_first_name",
    "billing_last_name": "billing_last_name",
    "billing_email": "billing_email",
    "billing_phone": "billing_phone",
    "billing_company": "billing_company",
    "billing_city": "billing_city",
    "billing_region": "billing_region",
    "payment_method": "payment_method",
    "customer_note": "customer_note",
    "project_name": "project_name",
}

PRICING_FIELDS = ("line_items", "num_days", "shipping_method_id", "shipping_total",
                  "manual_discount", "apply_iva", "start_date", "end_date")


class PricedLine(NamedTuple):
    product_id: Optional[int]
    name: str
    sku: Optional[str]
    quantity: int
    price: Money


class PricedOrder(NamedTuple):
    lines: List[PricedLine]
    num_days: int
    apply_iva: bool
    manual_discount: Money
    shipping_method: Optional[ShippingMethod]
    shipping_lines: list
    coupon: Optional[Coupon]
    coupon_lines: list
    totals: OrderTotals

    def as_api(self):
        return {
            "line_items": [
                {"product_id": l.product_id, "name": l.name, "sku": l.sku,
                 "quantity": l.quantity, "price": float(l.price)}
                for l in self.lines
            ],
            "num_days": self.num_days,
            "apply_iva": self.apply_iva,
            "manual_discount": float(self.manual_discount),
            "shipping_method_id": self.shipping_method.id if self.shipping_method else None,
            "shipping_lines": self.shipping_lines,
            "coupon_lines": self.coupon_lines,
            "totals": self.totals.as_api(),
        }


# ------------------------ input parsing ------------------------

def _money_field(data, field, default=0):
    raw = data.get(field, default)
    try:
        value = round_money(raw if raw not in (None, "") else default)
    except ValueError:
        raise ValidationError(f"{field} must be numeric")
    if value < 0:
        raise ValidationError(f"{field} cannot be negative")
    return value


def _date_field(data, field):
    raw = data.get(field)
    if raw in (None, ""):
        return None
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be a YYYY-MM-DD date")


def _rental_window(data):
    start, end = _date_field(data, "start_date"), _date_field(data, "end_date")
    if start and end and end < start:
        raise ValidationError("end_date cannot be before start_date")

    num_days = data.get("num_days")
    if num_days in (None, ""):
        # both ends of the range are billed
        return start, end, (end - start).days + 1 if start and end else 1
    num_days = parse_opt_int(num_days)
    if num_days is None or num_days < 1:
        raise ValidationError("num_days must be an integer >= 1")
    return start, end, num_days


def build_lines(raw_items) -> List[PricedLine]:
    """
    Resolve posted line items into price snapshots.

    An item carrying its own `price` keeps it (existing snapshots, admin
    overrides); otherwise the product's current price is captured.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("line_items must be a non-empty list")

    parsed = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("each line item must be an object")
        pid = parse_opt_int(raw.get("product_id"))
        qty = parse_opt_int(raw.get("quantity", 1))
        if qty is None or qty < 1:
            raise ValidationError("quantity must be an integer >= 1")
        parsed.append((pid, qty, raw))

    ids = {pid for pid, _, _ in parsed if pid}
    products = {p.id: p for p in Product.query.filter(Product.id.in_(ids)).all()} if ids else {}

    lines, missing = [], []
    for pid, qty, raw in parsed:
        product = products.get(pid)
        if raw.get("price") not in (None, ""):
            try:
                price = round_money(raw.get("price"))
            except ValueError:
                raise ValidationError("price must be numeric")
            if price < 0:
                raise ValidationError("price cannot be negative")
            name = raw.get("name") or (product.name if product else None)
            if not name:
                missing.append(pid)
                continue
            sku = raw.get("sku") or (product.sku if product else None)
        else:
            if not product:
                missing.append(pid)
                continue
            price, name, sku = round_money(product.price), product.name, product.sku
        lines.append(PricedLine(pid, name, sku, qty, price))

    if missing:
        raise ValidationError("some products were not found", data={"missing": missing})
    return lines


def _as_line_items(lines):
    return [LineItem(l.product_id, l.quantity, l.price) for l in lines]


# ------------------------ pricing ------------------------

def price_order(data: dict, customer_id=None, redeemed_coupon: Optional[str] = None,
                redeemed_discount=None) -> PricedOrder:
    """
    Price an order payload without touching the database.

    New coupons are validated here; a coupon already redeemed by the order
    (`redeemed_coupon`) is only recomputed against the new amounts.
    """
    lines = build_lines(data.get("line_items"))
    _, _, num_days = _rental_window(data)
    apply_iva = parse_bool(data.get("apply_iva"), default=True)
    manual_discount = _money_field(data, "manual_discount")
    line_items = _as_line_items(lines)
    base = products_subtotal(line_items, num_days)

    method = None
    shipping_lines = []
    method_id = parse_opt_int(data.get("shipping_method_id"))
    if method_id:
        method = shipping_service.get_method_or_404(method_id)
        valid, message = shipping_service.validate_shipping_method(
            method, base, data.get("billing_region"))
        if not valid:
            raise ValidationError(message)
        shipping = shipping_service.shipping_cost(method)
        shipping_lines = [shipping_service.shipping_line(method)]
    else:
        shipping = _money_field(data, "shipping_total")

    coupon = None
    coupon_discount = round_money(0)
    coupon_lines = []
    coupon_base = round_money(base + shipping)
    if redeemed_coupon:
        coupon = coupon_service.get_coupon_by_code(redeemed_coupon)
        if coupon:
            coupon_discount = compute_discount(
                coupon.discount_type, coupon.amount, coupon_base, coupon.maximum_amount,
                line_items=line_items, product_ids=coupon.product_ids)
        else:
            coupon_discount = min(round_money(redeemed_discount or 0), coupon_base)
        coupon_lines = [{
            "code": redeemed_coupon,
            "discount_type": coupon.discount_type if coupon else None,
            "discount": float(coupon_discount),
        }]
    elif data.get("coupon_code"):
        result = coupon_service.validate_coupon(
            data.get("coupon_code"), coupon_base, customer_id, line_items=line_items)
        if not result["is_valid"]:
            raise ValidationError(result["error_message"])
        coupon = coupon_service.get_coupon_by_code(data.get("coupon_code"))
        coupon_discount = round_money(result["discount_amount"])
        coupon_lines = [{
            "code": coupon.code,
            "discount_type": coupon.discount_type,
            "discount": float(coupon_discount),
        }]

    try:
        totals = compute_totals(line_items, num_days, shipping, manual_discount,
                                coupon_discount, apply_iva)
    except ValueError as e:
        raise ValidationError(str(e))

    return PricedOrder(lines, num_days, apply_iva, manual_discount, method, shipping_lines,
                       coupon, coupon_lines, totals)


def _store_pricing(order: Order, priced: PricedOrder):
    order.items.clear()
    for l in priced.lines:
        order.items.append(OrderItem(product_id=l.product_id, name=l.name, sku=l.sku,
                                     quantity=l.quantity, price=l.price))
    order.num_days = priced.num_days
    order.apply_iva = priced.apply_iva
    order.manual_discount = priced.manual_discount
    order.shipping_method_id = priced.shipping_method.id if priced.shipping_method else None
    order.shipping_lines = priced.shipping_lines
    order.shipping_total = priced.totals.shipping
    order.coupon_lines = priced.coupon_lines
    order.calculated_subtotal = priced.totals.subtotal
    order.calculated_discount = priced.totals.discount
    order.calculated_iva = priced.totals.iva
    order.calculated_total = priced.totals.total
    order.reserve = priced.totals.reserve


def _record_status(order: Order, from_status, to_status, reason=None, actor_id=None):
    order.history.append(OrderStatusChange(
        from_status=from_status, to_status=to_status, reason=reason, changed_by=actor_id))


def _apply_billing(order: Order, data: dict):
    for key, attr in BILLING_FIELDS.items():
        if key in data:
            value = data.get(key)
            if isinstance(value, (dict, list)):
                raise ValidationError(f"{key} must be a string")
            if value is not None and not isinstance(value, str):
                value = str(value)
            setattr(order, attr, value.strip() if isinstance(value, str) else value)
    if "start_date" in data or "end_date" in data:
        order.start_date = _date_field(data, "start_date") if "start_date" in data else order.start_date
        order.end_date = _date_field(data, "end_date") if "end_date" in data else order.end_date
        if order.start_date and order.end_date and order.end_date < order.start_date:
            raise ValidationError("end_date cannot be before start_date")


# ------------------------ lifecycle ------------------------

def get_order_or_404(order_id) -> Order:
    o = db.session.get(Order, order_id)
    if not o:
        raise NotFoundError("order not found")
    return o


def list_orders(status=None, search=None, customer_id=None, start=None, end=None):
    q = Order.query
    if status:
        q = q.filter(Order.status == status)
    if customer_id:
        q = q.filter(Order.customer_id == customer_id)
    if start:
        q = q.filter(Order.date_created >= start)
    if end:
        q = q.filter(Order.date_created <= end)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            Order.billing_first_name.ilike(like),
            Order.billing_last_name.ilike(like),
            Order.billing_email.ilike(like),
            Order.billing_company.ilike(like),
            Order.project_name.ilike(like),
            cast(Order.id, String) == search.strip(),
        ))
    return q.order_by(Order.date_created.desc(), Order.id.desc())


def create_order(data: dict, actor_id=None) -> Order:
    customer_id = parse_opt_int(data.get("customer_id"))
    if not customer_id:
        raise ValidationError("customer_id and billing_email are required")
    customer = db.session.get(User, customer_id)
    if not customer:
        raise ValidationError("customer not found")

    status = (data.get("status") or "on-hold").strip()
    if status not in ORDER_STATUSES:
        raise ValidationError("Invalid status")

    priced = price_order(data, customer_id=customer_id)

    order = Order(customer_id=customer_id, status=status)
    _apply_billing(order, data)
    order.billing_email = order.billing_email or customer.email
    if not order.billing_email:
        raise ValidationError("customer_id and billing_email are required")
    if not order.billing_first_name and customer.name:
        first, _, last = customer.name.partition(" ")
        order.billing_first_name, order.billing_last_name = first, order.billing_last_name or last
    order.billing_phone = order.billing_phone or customer.phone
    order.billing_city = order.billing_city or customer.city
    start, end, _ = _rental_window(data)
    order.start_date, order.end_date = start, end
    if status == "completed":
        order.date_completed = utcnow()

    _store_pricing(order, priced)
    _record_status(order, None, status, "order created", actor_id)

    try:
        db.session.add(order)
        db.session.flush()
        if priced.coupon:
            coupon_service.redeem_coupon(priced.coupon, customer_id, order.id,
                                         priced.coupon_lines[0]["discount"])
        db.session.commit()
    except (ApiError, SQLAlchemyError):
        db.session.rollback()
        raise

    logger.info("order created id=%s customer=%s total=%s", order.id, customer_id, order.calculated_total)
    return order


def _pricing_input(order: Order, data: dict) -> dict:
    merged = {
        "line_items": [{"product_id": i.product_id, "name": i.name, "sku": i.sku,
                        "quantity": i.quantity, "price": i.price} for i in order.items],
        "num_days": order.num_days,
        "apply_iva": order.apply_iva,
        "manual_discount": order.manual_discount,
        "shipping_total": order.shipping_total,
        "billing_region": order.billing_region,
    }
    merged.update({k: v for k, v in data.items() if k in PRICING_FIELDS or k == "billing_region"})
    if ("start_date" in data or "end_date" in data) and "num_days" not in data:
        start = data.get("start_date", order.start_date)
        end = data.get("end_date", order.end_date)
        merged.pop("num_days", None)
        merged["start_date"], merged["end_date"] = (
            start.isoformat() if isinstance(start, date) else start,
            end.isoformat() if isinstance(end, date) else end,
        )
    return merged


def update_order(order: Order, data: dict) -> Order:
    if order.status in LOCKED_STATUSES:
        raise ConflictError(f"a {order.status} order cannot be edited")
    if data.get("coupon_code"):
        raise ValidationError("coupons can only be applied when the order is created")

    _apply_billing(order, data)

    if any(k in data for k in PRICING_FIELDS):
        # the stored shipping choice is charged as it was; only a new choice is validated
        kept_shipping = None
        if order.shipping_method_id and "shipping_method_id" not in data and "shipping_total" not in data:
            kept_shipping = (order.shipping_method_id, list(order.shipping_lines or []))
        redeemed = (order.coupon_lines or [None])[0]
        priced = price_order(
            _pricing_input(order, data),
            customer_id=order.customer_id,
            redeemed_coupon=redeemed["code"] if redeemed else None,
            redeemed_discount=redeemed["discount"] if redeemed else None,
        )
        _store_pricing(order, priced)
        if kept_shipping:
            order.shipping_method_id, order.shipping_lines = kept_shipping
        if redeemed:
            usage = CouponUsage.query.filter_by(order_id=order.id).first()
            if usage:
                usage.discount_amount = round_money(priced.coupon_lines[0]["discount"])

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("order updated id=%s total=%s", order.id, order.calculated_total)
    return order


def change_status(order: Order, status, reason=None, actor_id=None) -> Order:
    status = (status or "").strip()
    if not status:
        raise ValidationError("Status is required")
    if status not in ORDER_STATUSES:
        raise ValidationError("Invalid status")
    if status == order.status:
        return order
    if status not in STATUS_TRANSITIONS.get(order.status, set()):
        raise ConflictError(f"cannot move order from {order.status} to {status}")

    previous = order.status
    order.status = status
    if status == "completed":
        order.date_completed = utcnow()
    _record_status(order, previous, status, reason, actor_id)
    db.session.commit()
    logger.info("order %s status %s -> %s", order.id, previous, status)
    return order


def duplicate_order(order: Order, actor_id=None) -> Order:
    """Copy an order as a new pending one; coupons are not carried over."""
    copy = Order(customer_id=order.customer_id, status="pending")
    for attr in BILLING_FIELDS.values():
        setattr(copy, attr, getattr(order, attr))
    copy.start_date, copy.end_date = order.start_date, order.end_date

    lines = [PricedLine(i.product_id, i.name, i.sku, i.quantity, round_money(i.price)) for i in order.items]
    totals = compute_totals(_as_line_items(lines), order.num_days or 1, order.shipping_total or 0,
                            order.manual_discount or 0, 0, bool(order.apply_iva))
    method = db.session.get(ShippingMethod, order.shipping_method_id) if order.shipping_method_id else None
    _store_pricing(copy, PricedOrder(
        lines, order.num_days or 1, bool(order.apply_iva), round_money(order.manual_discount or 0),
        method, list(order.shipping_lines or []), None, [], totals))
    _record_status(copy, None, "pending", f"duplicated from order #{order.id}", actor_id)

    db.session.add(copy)
    db.session.commit()
    logger.info("order %s duplicated as %s", order.id, copy.id)
    return copy
