# --- rental_admin/model/shipping.py ---
from sqlalchemy.sql import func

from ..extensions import db


class ShippingMethod(db.Model):
    __tablename__ = "shipping_method"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    # free / flat_rate / local_pickup / calculated / express
    shipping_type = db.Column(db.String(20), nullable=False, default="flat_rate")
    enabled = db.Column(db.Boolean, default=True, index=True)

    min_amount = db.Column(db.Numeric(12, 2), nullable=True)
    max_amount = db.Column(db.Numeric(12, 2), nullable=True)
    available_regions = db.Column(db.JSON)   # list of region codes, null = everywhere
    excluded_regions = db.Column(db.JSON)

    estimated_days_min = db.Column(db.Integer, nullable=False, default=1)
    estimated_days_max = db.Column(db.Integer, nullable=False, default=1)
    requires_address = db.Column(db.Boolean, default=True)
    requires_phone = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "cost": float(self.cost or 0),
            "shipping_type": self.shipping_type,
            "enabled": bool(self.enabled),
            "min_amount": float(self.min_amount) if self.min_amount is not None else None,
            "max_amount": float(self.max_amount) if self.max_amount is not None else None,
            "available_regions": self.available_regions,
            "excluded_regions": self.excluded_regions,
            "estimated_days_min": self.estimated_days_min,
            "estimated_days_max": self.estimated_days_max,
            "requires_address": bool(self.requires_address),
            "requires_phone": bool(self.requires_phone),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
