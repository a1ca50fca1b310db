import logging
import re
from io import BytesIO

import pandas as pd
from flask import request, send_file
from sqlalchemy import asc, desc, or_
from sqlalchemy.exc import IntegrityError

from . import bp
from ..extensions import db
from ..model import Category, Product
from ..utils.api import err, ok, paginate
from ..utils.dates import utcnow
from ..utils.decorators import staff_required
from ..utils.money import round_money
from ..utils.parsing import parse_id_list, parse_opt_float, parse_opt_int, slugify

logger = logging.getLogger(__name__)

STOCK_STATUSES = ("instock", "outofstock", "onbackorder")
PRODUCT_STATUSES = ("publish", "draft")


# ---------- helpers ----------
def _sort_products(query, sort):
    sort = (sort or "").strip()
    mapping = {
        "id": asc(Product.id), "-id": desc(Product.id),
        "name": asc(Product.name), "-name": desc(Product.name),
        "price": asc(Product.price), "-price": desc(Product.price),
    }
    return query.order_by(mapping.get(sort, desc(Product.id)))  # newest first


def parse_unique_violation(exc: IntegrityError):
    m = re.search(r"UNIQUE constraint failed:\s*([^.]+)\.([^\s,]+)", str(exc.orig))
    if m:
        return {"table": m.group(1), "column": m.group(2)}
    m = re.search(r"Key \(([^)]+)\)=\(([^)]+)\) already exists", str(exc.orig))
    if m:
        return {"table": "product", "column": m.group(1), "value": m.group(2)}
    return None


def _apply_payload(p: Product, data: dict, partial: bool):
    """Copy request fields onto `p`; returns an error message or None."""
    if "name" in data or not partial:
        name = (data.get("name") or "").strip()
        if not name:
            return "name is required"
        p.name = name
        if "slug" not in data:
            p.slug = slugify(name)
    if "slug" in data:
        p.slug = slugify(data.get("slug") or p.name)

    if "sku" in data:
        p.sku = (data.get("sku") or "").strip() or None

    for field in ("price", "regular_price"):
        if field in data or (field == "price" and not partial):
            value = parse_opt_float(data.get(field))
            if value is None and field == "price":
                return "price must be numeric"
            if value is not None and value < 0:
                return f"{field} cannot be negative"
            setattr(p, field, round_money(value) if value is not None else None)

    if "stock_status" in data:
        stock_status = (data.get("stock_status") or "").strip().lower()
        if stock_status not in STOCK_STATUSES:
            return f"stock_status must be one of {', '.join(STOCK_STATUSES)}"
        p.stock_status = stock_status
    if "stock_quantity" in data:
        p.stock_quantity = parse_opt_int(data.get("stock_quantity"))
    if "status" in data:
        status = (data.get("status") or "").strip().lower()
        if status not in PRODUCT_STATUSES:
            return f"status must be one of {', '.join(PRODUCT_STATUSES)}"
        p.status = status

    for field in ("description", "image_url"):
        if field in data:
            setattr(p, field, data.get(field))

    if "category_id" in data:
        category_id = parse_opt_int(data.get("category_id"))
        if category_id and not db.session.get(Category, category_id):
            return "category not found"
        p.category_id = category_id
    return None


def _commit_or_conflict(p: Product, message, status=200):
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        return err("Unique constraint violation", 409, {"conflicts": parse_unique_violation(e)})
    return ok(p.as_api(), message, status)


# ---------- routes ----------
@bp.get("")
@staff_required
def list_products():
    """
    Query params:
      search       -> substring match on name/sku; if it is an int, also match id
      category_id  -> int
      status       -> publish / draft
      stock_status -> instock / outofstock / onbackorder
      sort         -> id, -id, name, -name, price, -price
      page, limit  -> default 1 / 10 (cap 100)
    """
    search = (request.args.get("search") or "").strip()
    query = Product.query

    if search:
        maybe_id = parse_opt_int(search)
        like = f"%{search}%"
        query = query.filter(or_(
            Product.name.ilike(like),
            Product.sku.ilike(like),
            (Product.id == maybe_id) if maybe_id is not None else False,
        ))

    category_id = parse_opt_int(request.args.get("category_id"))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    for field in ("status", "stock_status"):
        value = (request.args.get(field) or "").strip()
        if value:
            query = query.filter(getattr(Product, field) == value)

    query = _sort_products(query, request.args.get("sort"))
    return ok(paginate(query, request.args.get("page"), request.args.get("limit"), lambda p: p.as_api()))


@bp.get("/<int:pid>")
@staff_required
def get_product(pid):
    return ok(db.get_or_404(Product, pid).as_api())


@bp.post("")
@staff_required
def create_product():
    data = request.get_json(silent=True) or {}
    p = Product(stock_status="instock", status="publish")
    problem = _apply_payload(p, data, partial=False)
    if problem:
        return err(problem, 400)
    db.session.add(p)
    return _commit_or_conflict(p, "Product created", 201)


@bp.put("/<int:pid>")
@staff_required
def update_product(pid):
    p = db.get_or_404(Product, pid)
    data = request.get_json(silent=True) or {}
    problem = _apply_payload(p, data, partial=True)
    if problem:
        db.session.rollback()
        return err(problem, 400)
    p.date_modified = utcnow()
    return _commit_or_conflict(p, "Product updated")


@bp.delete("/<int:pid>")
@staff_required
def delete_product(pid):
    # order lines keep their own name/sku/price snapshot
    p = db.get_or_404(Product, pid)
    db.session.delete(p)
    db.session.commit()
    logger.info("product deleted id=%s", pid)
    return ok({"id": pid}, "Product deleted")


@bp.post("/batch")
@staff_required
def batch_products():
    """
    Body: {"ids": [4, 2, 9]}
    Products come back in request order; unknown ids are listed in `missing`.
    """
    data = request.get_json(silent=True) or {}
    ids = data.get("ids")
    if not isinstance(ids, list) or not ids:
        return err("ids must be a non-empty list", 400)

    valid, invalid = parse_id_list(ids)
    if invalid:
        return err("ids must be positive integers", 400, {"invalid": invalid})

    wanted = list(dict.fromkeys(valid))
    found = {p.id: p for p in Product.query.filter(Product.id.in_(wanted)).all()}
    return ok({
        "products": [found[i].as_api() for i in wanted if i in found],
        "missing": [i for i in wanted if i not in found],
    })


@bp.post("/<int:pid>/duplicate")
@staff_required
def duplicate_product(pid):
    src = db.get_or_404(Product, pid)

    sku = None
    if src.sku:
        base = f"{src.sku}-copy"
        sku, counter = base, 1
        while Product.query.filter_by(sku=sku).first():
            counter += 1
            sku = f"{base}-{counter}"

    copy = Product(
        name=f"{src.name} (Copy)",
        slug=slugify(f"{src.name} copy"),
        sku=sku,
        description=src.description,
        price=src.price,
        regular_price=src.regular_price,
        stock_status=src.stock_status,
        stock_quantity=src.stock_quantity,
        status="draft",
        image_url=src.image_url,
        category_id=src.category_id,
    )
    db.session.add(copy)
    return _commit_or_conflict(copy, "Product duplicated", 201)


@bp.get("/export")
@staff_required
def export_products():
    """
    Export all products as an Excel file.
    """
    products = Product.query.order_by(Product.id).all()
    product_data = [{
        "ID": p.id,
        "SKU": p.sku,
        "Slug": p.slug,
        "Name": p.name,
        "Price": float(p.price or 0),
        "Regular Price": float(p.regular_price) if p.regular_price is not None else None,
        "Stock Status": p.stock_status,
        "Stock Quantity": p.stock_quantity,
        "Status": p.status,
        "Category": p.category.name if p.category else None,
    } for p in products]
    df = pd.DataFrame(product_data, columns=[
        "ID", "SKU", "Slug", "Name", "Price", "Regular Price",
        "Stock Status", "Stock Quantity", "Status", "Category",
    ])

    output = BytesIO()
    df.to_excel(output, index=False)
    output.seek(0)

    return send_file(
        output,
        as_attachment=True,
        download_name="products_export.xlsx",
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
