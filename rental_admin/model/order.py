# rental_admin/model/order.py
from ..extensions import db
from ..utils.dates import iso, utcnow
from ..utils.money import to_float

ORDER_STATUSES = ("pending", "processing", "on-hold", "completed", "cancelled", "refunded", "failed")


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(20), default="on-hold", index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True)

    # Billing snapshot
    billing_first_name = db.Column(db.String(120))
    billing_last_name = db.Column(db.String(120))
    billing_email = db.Column(db.String(255))
    billing_phone = db.Column(db.String(50))
    billing_company = db.Column(db.String(255))
    billing_city = db.Column(db.String(120))
    billing_region = db.Column(db.String(16))

    payment_method = db.Column(db.String(64))
    customer_note = db.Column(db.Text)

    # Rental window
    project_name = db.Column(db.String(255))
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    num_days = db.Column(db.Integer, nullable=False, default=1)  # rental days

    # Shipping & coupons
    shipping_method_id = db.Column(db.Integer, db.ForeignKey("shipping_method.id"), nullable=True)
    shipping_total = db.Column(db.Numeric(12, 2), default=0)
    shipping_lines = db.Column(db.JSON, default=list)
    coupon_lines = db.Column(db.JSON, default=list)

    # Money snapshot
    manual_discount = db.Column(db.Numeric(12, 2), default=0)
    apply_iva = db.Column(db.Boolean, default=True)
    calculated_subtotal = db.Column(db.Numeric(12, 2))
    calculated_discount = db.Column(db.Numeric(12, 2))
    calculated_iva = db.Column(db.Numeric(12, 2))
    calculated_total = db.Column(db.Numeric(12, 2))
    reserve = db.Column(db.Numeric(12, 2))

    budget_url = db.Column(db.String(512))

    date_created = db.Column(db.DateTime, default=utcnow, index=True)
    date_modified = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    date_completed = db.Column(db.DateTime)

    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )
    history = db.relationship(
        "OrderStatusChange",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderStatusChange.id",
    )
    documents = db.relationship(
        "OrderDocument",
        backref="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderDocument.id",
    )

    @property
    def customer_name(self):
        return f"{self.billing_first_name or ''} {self.billing_last_name or ''}".strip()

    def as_api(self):
        return {
            "id": self.id,
            "status": self.status,
            "customer_id": self.customer_id,
            "billing": {
                "first_name": self.billing_first_name,
                "last_name": self.billing_last_name,
                "email": self.billing_email,
                "phone": self.billing_phone,
                "company": self.billing_company,
                "city": self.billing_city,
                "region": self.billing_region,
            },
            "payment_method": self.payment_method,
            "customer_note": self.customer_note,
            "project_name": self.project_name,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "num_days": self.num_days,
            "line_items": [i.as_api() for i in self.items],
            "shipping_method_id": self.shipping_method_id,
            "shipping_total": to_float(self.shipping_total or 0),
            "shipping_lines": self.shipping_lines or [],
            "coupon_lines": self.coupon_lines or [],
            "money": {
                "manual_discount": to_float(self.manual_discount or 0),
                "apply_iva": bool(self.apply_iva),
                "subtotal": to_float(self.calculated_subtotal or 0),
                "discount": to_float(self.calculated_discount or 0),
                "iva": to_float(self.calculated_iva or 0),
                "total": to_float(self.calculated_total or 0),
                "reserve": to_float(self.reserve or 0),
            },
            "budget_url": self.budget_url,
            "date_created": iso(self.date_created),
            "date_modified": iso(self.date_modified),
            "date_completed": iso(self.date_completed),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, index=True)
    name = db.Column(db.String(255))
    sku = db.Column(db.String(64))

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)  # unit price snapshot per rental day

    def as_api(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "quantity": self.quantity,
            "price": to_float(self.price or 0),
        }


class OrderStatusChange(db.Model):
    __tablename__ = "order_status_changes"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    from_status = db.Column(db.String(20))
    to_status = db.Column(db.String(20), nullable=False)
    reason = db.Column(db.Text)
    changed_by = db.Column(db.Integer, nullable=True)
    changed_at = db.Column(db.DateTime, default=utcnow)

    def as_api(self):
        return {
            "from_status": self.from_status,
            "to_status": self.to_status,
            "reason": self.reason,
            "changed_by": self.changed_by,
            "changed_at": iso(self.changed_at),
        }


class OrderDocument(db.Model):
    __tablename__ = "order_documents"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    kind = db.Column(db.String(20), nullable=False, default="other")  # budget / contract / warranty / other
    filename = db.Column(db.String(255), nullable=False)
    url = db.Column(db.String(512), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def as_api(self):
        return {
            "id": self.id,
            "kind": self.kind,
            "filename": self.filename,
            "url": self.url,
            "created_at": iso(self.created_at),
        }
