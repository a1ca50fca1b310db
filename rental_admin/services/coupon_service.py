# rental_admin/services/coupon_service.py
import logging

from sqlalchemy import func, or_, update

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..model import Coupon, CouponUsage
from ..utils.dates import parse_iso8601, utcnow
from ..utils.money import D, round_money
from ..utils.parsing import parse_opt_int
from .pricing import DISCOUNT_TYPES, compute_discount

logger = logging.getLogger(__name__)

REDEEMABLE_STATUSES = ("publish", "active")
COUPON_STATUSES = ("publish", "active", "draft", "pending", "trash")


def normalize_code(code):
    return (code or "").strip().upper()


def get_coupon_by_code(code):
    code = normalize_code(code)
    if not code:
        return None
    return Coupon.query.filter(func.upper(Coupon.code) == code).first()


# ------------------------ create / update ------------------------

def _apply_payload(c: Coupon, data: dict, partial: bool):
    if "code" in data or not partial:
        code = normalize_code(data.get("code"))
        if not code:
            raise ValidationError("code is required")
        existing = get_coupon_by_code(code)
        if existing and existing.id != c.id:
            raise ConflictError("Coupon code already exists")
        c.code = code

    if "discount_type" in data or not partial:
        dtype = (data.get("discount_type") or "percent").strip().lower()
        if dtype not in DISCOUNT_TYPES:
            raise ValidationError(f"discount_type must be one of {', '.join(DISCOUNT_TYPES)}")
        c.discount_type = dtype

    if "amount" in data or not partial:
        try:
            amount = D(data.get("amount"))
        except ValueError:
            raise ValidationError("amount must be numeric")
        if amount <= 0:
            raise ValidationError("amount must be > 0")
        c.amount = round_money(amount)
    if c.discount_type == "percent" and c.amount is not None and D(c.amount) > 100:
        raise ValidationError("percent coupon must be <= 100")

    if "status" in data or not partial:
        status = (data.get("status") or "publish").strip().lower()
        if status not in COUPON_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(COUPON_STATUSES)}")
        c.status = status

    if "description" in data:
        c.description = data.get("description")

    for field in ("usage_limit", "usage_limit_per_user"):
        if field in data:
            value = parse_opt_int(data.get(field))
            if value is not None and value < 0:
                raise ValidationError(f"{field} cannot be negative")
            setattr(c, field, value)

    for field in ("minimum_amount", "maximum_amount"):
        if field in data:
            raw = data.get(field)
            if raw in (None, ""):
                setattr(c, field, None)
                continue
            try:
                value = round_money(raw)
            except ValueError:
                raise ValidationError(f"{field} must be numeric")
            if value < 0:
                raise ValidationError(f"{field} cannot be negative")
            setattr(c, field, value)

    if "product_ids" in data:
        ids = data.get("product_ids") or []
        if not isinstance(ids, list) or not all(parse_opt_int(i) for i in ids):
            raise ValidationError("product_ids must be a list of product ids")
        c.product_ids = [int(i) for i in ids]

    if "date_expires" in data:
        raw = data.get("date_expires")
        expires = parse_iso8601(raw)
        if raw and not expires:
            raise ValidationError("Invalid datetime format for date_expires")
        c.date_expires = expires


def create_coupon(data: dict) -> Coupon:
    c = Coupon(usage_count=0, product_ids=[])
    _apply_payload(c, data, partial=False)
    db.session.add(c)
    db.session.commit()
    logger.info("coupon created id=%s code=%s", c.id, c.code)
    return c


def update_coupon(c: Coupon, data: dict) -> Coupon:
    _apply_payload(c, data, partial=True)
    db.session.commit()
    logger.info("coupon updated id=%s", c.id)
    return c


def delete_coupon(c: Coupon):
    if CouponUsage.query.filter_by(coupon_id=c.id).first():
        # redemptions back the per-user limits and the stats
        raise ConflictError("Coupon has been used; set its status to trash instead")
    db.session.delete(c)
    db.session.commit()
    logger.info("coupon deleted id=%s", c.id)


def list_coupons(status=None, search=None):
    q = Coupon.query
    if status:
        q = q.filter(Coupon.status == status)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Coupon.code.ilike(like), Coupon.description.ilike(like)))
    return q.order_by(Coupon.date_created.desc(), Coupon.id.desc())


# ------------------------ validation ------------------------

def _invalid(message):
    return {
        "is_valid": False,
        "coupon_data": None,
        "error_message": message,
        "discount_amount": 0.0,
    }


def user_usage_count(coupon_id, user_id):
    if not user_id:
        return 0
    return (db.session.query(func.count(CouponUsage.id))
            .filter(CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id)
            .scalar()) or 0


def validate_coupon(code, subtotal, user_id=None, line_items=None, now=None):
    """
    Check whether `code` can be used on a cart of `subtotal` by `user_id`.

    Never mutates anything; usage is only recorded by `redeem_coupon`
    when the order is committed.
    """
    now = now or utcnow()
    subtotal = round_money(subtotal or 0)

    c = get_coupon_by_code(code)
    if not c:
        return _invalid("Coupon not found")
    if c.status not in REDEEMABLE_STATUSES:
        return _invalid("Coupon not available")
    if c.date_expires and c.date_expires < now:
        return _invalid("This coupon has expired")
    if c.usage_limit is not None and (c.usage_count or 0) >= c.usage_limit:
        return _invalid("This coupon has reached its usage limit")
    if c.usage_limit_per_user and user_usage_count(c.id, user_id) >= c.usage_limit_per_user:
        return _invalid("You have already used this coupon the maximum number of times")
    if c.minimum_amount is not None and subtotal < D(c.minimum_amount):
        return _invalid(f"The minimum amount to use this coupon is ${D(c.minimum_amount):,.0f}")

    discount = compute_discount(
        c.discount_type, c.amount, subtotal, c.maximum_amount,
        line_items=line_items, product_ids=c.product_ids,
    )
    return {
        "is_valid": True,
        "coupon_data": {
            "id": c.id,
            "code": c.code,
            "amount": float(c.amount),
            "discount_type": c.discount_type,
            "description": c.description,
            "date_expires": c.date_expires.isoformat() if c.date_expires else None,
            "usage_limit_per_user": c.usage_limit_per_user,
            "status": c.status,
            "minimum_amount": float(c.minimum_amount) if c.minimum_amount is not None else None,
            "maximum_amount": float(c.maximum_amount) if c.maximum_amount is not None else None,
        },
        "error_message": None,
        "discount_amount": float(discount),
    }


# ------------------------ redemption ------------------------

def redeem_coupon(coupon: Coupon, user_id, order_id, discount_amount) -> CouponUsage:
    """
    Record one use of `coupon` inside the caller's transaction.

    The counter only moves through a conditional UPDATE, so two checkouts
    racing for the last use cannot both succeed. The caller commits.
    """
    stmt = (
        update(Coupon)
        .where(Coupon.id == coupon.id)
        .where(or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit))
        .values(usage_count=Coupon.usage_count + 1, date_modified=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise ConflictError(f"coupon '{coupon.code}' has reached its usage limit")
    db.session.expire(coupon, ["usage_count", "date_modified"])

    usage = CouponUsage(
        coupon_id=coupon.id,
        user_id=user_id,
        order_id=order_id,
        discount_amount=round_money(discount_amount),
    )
    db.session.add(usage)
    logger.info("coupon redeemed code=%s order=%s user=%s", coupon.code, order_id, user_id)
    return usage


# ------------------------ reporting ------------------------

def coupon_stats(now=None):
    now = now or utcnow()
    total = db.session.query(func.count(Coupon.id)).scalar() or 0
    active = (db.session.query(func.count(Coupon.id))
              .filter(Coupon.status.in_(REDEEMABLE_STATUSES)).scalar()) or 0
    used = db.session.query(func.count(CouponUsage.id)).scalar() or 0
    expired = (db.session.query(func.count(Coupon.id))
               .filter(Coupon.date_expires.isnot(None), Coupon.date_expires < now).scalar()) or 0
    total_discount = db.session.query(func.coalesce(func.sum(CouponUsage.discount_amount), 0)).scalar()

    return {
        "total_coupons": total,
        "active_coupons": active,
        "used_coupons": used,
        "expired_coupons": expired,
        "total_discount": float(round_money(total_discount or 0)),
        "usage_rate": round(used / total * 100, 1) if total else 0.0,
    }


def coupon_debug(now=None, sample_size=5):
    """Status distribution and how many coupons are actually redeemable right now."""
    now = now or utcnow()
    coupons = Coupon.query.order_by(Coupon.date_created.desc(), Coupon.id.desc()).all()

    distribution = {}
    expired = 0
    redeemable = 0
    for c in coupons:
        key = c.status or "null"
        distribution[key] = distribution.get(key, 0) + 1
        is_expired = c.date_expires is not None and c.date_expires < now
        if is_expired:
            expired += 1
        has_uses_left = c.usage_limit is None or (c.usage_count or 0) < c.usage_limit
        if not is_expired and has_uses_left and c.status in REDEEMABLE_STATUSES:
            redeemable += 1

    return {
        "total_coupons": len(coupons),
        "status_distribution": distribution,
        "expired_count": expired,
        "active_count": redeemable,
        "sample_coupons": [
            {
                "id": c.id,
                "code": c.code,
                "status": c.status,
                "date_expires": c.date_expires.isoformat() if c.date_expires else None,
                "usage_count": c.usage_count,
                "usage_limit": c.usage_limit,
                "amount": float(c.amount or 0),
                "discount_type": c.discount_type,
            }
            for c in coupons[:sample_size]
        ],
        "timestamp": now.isoformat(),
    }


def user_coupon_history(user_id):
    rows = (CouponUsage.query
            .filter(CouponUsage.user_id == user_id)
            .order_by(CouponUsage.used_at.desc(), CouponUsage.id.desc())
            .all())
    return [u.as_api() for u in rows]


def get_coupon_or_404(coupon_id) -> Coupon:
    c = db.session.get(Coupon, coupon_id)
    if not c:
        raise NotFoundError("Coupon not found")
    return c
