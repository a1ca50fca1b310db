# --- rental_admin/model/category.py ---
from sqlalchemy.sql import func

from ..extensions import db


# ---------------- CATEGORY ----------------
class Category(db.Model):
    __tablename__ = "category"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    slug = db.Column(db.String(160), index=True)
    description = db.Column(db.Text)
    # one level of nesting; parents are always top-level
    parent_id = db.Column(db.Integer, db.ForeignKey("category.id"), nullable=True, index=True)
    menu_order = db.Column(db.Integer, default=0)

    date_created = db.Column(db.DateTime, server_default=func.now())
    date_modified = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    parent = db.relationship("Category", remote_side=[id], backref="children")
    products = db.relationship(
        "Product",
        backref="category",
        lazy=True
        )

    def as_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "parent": self.parent_id,
            "menu_order": self.menu_order,
            "count": len(self.products),
            "date_created": self.date_created.isoformat() if self.date_created else None,
            "date_modified": self.date_modified.isoformat() if self.date_modified else None,
            }

    def as_tree(self):
        node = self.as_dict()
        node["children"] = [
            c.as_dict() for c in sorted(self.children, key=lambda c: (c.menu_order or 0, c.name))
        ]
        return node
