# --- rental_admin/model/coupon.py ---

from sqlalchemy.sql import func

from ..extensions import db


class Coupon(db.Model):
    __tablename__ = "coupon"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)  # stored upper-case
    description = db.Column(db.Text)

    # "percent", "fixed_cart" or "fixed_product"
    discount_type = db.Column(db.String(16), nullable=False, default="percent")
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), default="publish", index=True)

    # Optional constraints
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    usage_limit = db.Column(db.Integer, nullable=True)            # global usage cap
    usage_limit_per_user = db.Column(db.Integer, nullable=True)
    minimum_amount = db.Column(db.Numeric(12, 2), nullable=True)  # require subtotal >= this
    maximum_amount = db.Column(db.Numeric(12, 2), nullable=True)  # cap on the discount itself
    product_ids = db.Column(db.JSON, default=list)                # fixed_product targets, empty = all
    date_expires = db.Column(db.DateTime, nullable=True)

    date_created = db.Column(db.DateTime, server_default=func.now())
    date_modified = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    usages = db.relationship("CouponUsage", back_populates="coupon", lazy="selectin")

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discount_type": self.discount_type,
            "amount": float(self.amount or 0),
            "status": self.status,
            "usage_count": self.usage_count or 0,
            "usage_limit": self.usage_limit,
            "usage_limit_per_user": self.usage_limit_per_user,
            "minimum_amount": float(self.minimum_amount) if self.minimum_amount is not None else None,
            "maximum_amount": float(self.maximum_amount) if self.maximum_amount is not None else None,
            "product_ids": list(self.product_ids or []),
            "date_expires": self.date_expires.isoformat() if self.date_expires else None,
            "date_created": self.date_created.isoformat() if self.date_created else None,
            "date_modified": self.date_modified.isoformat() if self.date_modified else None,
        }


class CouponUsage(db.Model):
    __tablename__ = "coupon_usage"
    __table_args__ = (db.UniqueConstraint("coupon_id", "order_id", name="uq_coupon_usage_order"),)

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupon.id"), index=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="SET NULL"), index=True, nullable=True)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    used_at = db.Column(db.DateTime, server_default=func.now())

    coupon = db.relationship("Coupon", back_populates="usages")

    def as_api(self):
        return {
            "id": self.id,
            "coupon_id": self.coupon_id,
            "code": self.coupon.code if self.coupon else None,
            "discount_type": self.coupon.discount_type if self.coupon else None,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "discount_amount": float(self.discount_amount or 0),
            "used_at": self.used_at.isoformat() if self.used_at else None,
        }
