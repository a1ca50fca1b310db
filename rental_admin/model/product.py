# rental_admin/model/product.py
from sqlalchemy.sql import func

from ..extensions import db


class Product(db.Model):
    __tablename__ = "product"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    sku = db.Column(db.String(64), unique=True, index=True)
    slug = db.Column(db.String(255), index=True)
    description = db.Column(db.Text)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)   # per rental day
    regular_price = db.Column(db.Numeric(12, 2))

    stock_status = db.Column(db.String(32), default="instock", index=True)  # instock / outofstock / onbackorder
    stock_quantity = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(16), default="publish", index=True)        # publish / draft
    image_url = db.Column(db.String(1024))

    category_id = db.Column(
        db.Integer,
        db.ForeignKey("category.id"),
        nullable=True
    )

    date_created = db.Column(db.DateTime, server_default=func.now())
    date_modified = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "slug": self.slug,
            "description": self.description,
            "price": float(self.price or 0),
            "regular_price": float(self.regular_price) if self.regular_price is not None else None,
            "stock_status": self.stock_status,
            "stock_quantity": self.stock_quantity,
            "status": self.status,
            "image_url": self.image_url,
            "category": {"id": self.category.id, "name": self.category.name} if self.category else None,
            "date_created": self.date_created.isoformat() if self.date_created else None,
            "date_modified": self.date_modified.isoformat() if self.date_modified else None,
        }
