# --- rental_admin/model/user.py ---
from sqlalchemy.sql import func

from ..extensions import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(180), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False, default="")
    role = db.Column(db.String(50), nullable=False, default="customer", index=True)  # customer, manager, admin

    # customer profile, used by the order forms and analytics
    customer_type = db.Column(db.String(16), default="persona")  # persona / empresa
    city = db.Column(db.String(120))
    phone = db.Column(db.String(50))
    terms_accepted = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, server_default=func.now())

    def as_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "customer_type": self.customer_type,
            "city": self.city,
            "phone": self.phone,
            "terms_accepted": bool(self.terms_accepted),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
