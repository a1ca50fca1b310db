# --- category/routes.py ---
import logging

from flask import request
from sqlalchemy import func, or_

from . import bp
from ..extensions import db
from ..model import Category, Product
from ..utils.api import err, ok, paginate
from ..utils.dates import utcnow
from ..utils.decorators import staff_required
from ..utils.parsing import parse_bool, parse_opt_int, slugify

logger = logging.getLogger(__name__)


# ------------------------ helpers ------------------------
def _name_taken(name, exclude_id=None):
    q = Category.query.filter(func.lower(Category.name) == name.lower())
    if exclude_id:
        q = q.filter(Category.id != exclude_id)
    return db.session.query(q.exists()).scalar()


def _resolve_parent(raw, c=None):
    """Return (parent_id, error) for a requested parent."""
    parent_id = parse_opt_int(raw)
    if not parent_id:
        return None, None
    parent = db.session.get(Category, parent_id)
    if not parent:
        return None, "parent category not found"
    if c is not None and parent.id == c.id:
        return None, "a category cannot be its own parent"
    if parent.parent_id is not None:
        return None, "parent must be a top-level category"
    if c is not None and c.children:
        return None, "a category with subcategories cannot be nested"
    return parent.id, None


def _ordered(q):
    return q.order_by(Category.menu_order.asc(), Category.name.asc())


# ------------------------ CATEGORY ROUTES ------------------------

@bp.get("")
def list_categories():
    """
    search       -> substring match on name / slug
    hierarchical -> top-level categories with their children
    page, limit  -> default 1 / 10 (cap 100)
    """
    search = (request.args.get("search") or "").strip()
    hierarchical = parse_bool(request.args.get("hierarchical"))

    qry = Category.query
    if search:
        like = f"%{search}%"
        qry = qry.filter(or_(Category.name.ilike(like), Category.slug.ilike(like)))

    if hierarchical and not search:
        qry = qry.filter(Category.parent_id.is_(None))
        return ok(paginate(_ordered(qry), request.args.get("page"), request.args.get("limit"),
                           lambda c: c.as_tree()))

    return ok(paginate(_ordered(qry), request.args.get("page"), request.args.get("limit"),
                       lambda c: c.as_dict()))


@bp.post("")
@staff_required
def create_category():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return err("name is required", 400)
    if _name_taken(name):
        return err("category name already exists", 409)

    parent_id, problem = _resolve_parent(data.get("parent"))
    if problem:
        return err(problem, 400)

    c = Category(
        name=name,
        slug=slugify(data.get("slug") or name),
        description=data.get("description"),
        parent_id=parent_id,
        menu_order=parse_opt_int(data.get("menu_order")) or 0,
    )
    db.session.add(c)
    db.session.commit()
    logger.info("category created id=%s name=%s", c.id, c.name)
    return ok(c.as_dict(), "Category created", 201)


@bp.get("/<int:cid>")
def get_category(cid):
    c = db.get_or_404(Category, cid)
    return ok(c.as_tree())


@bp.put("/<int:cid>")
@staff_required
def update_category(cid):
    c = db.get_or_404(Category, cid)
    data = request.get_json(silent=True) or {}

    if "name" in data:
        new_name = (data.get("name") or "").strip()
        if not new_name:
            return err("name cannot be empty", 400)
        if _name_taken(new_name, exclude_id=c.id):
            return err("category name already exists", 409)
        c.name = new_name
        if "slug" not in data:
            c.slug = slugify(new_name)
    if "slug" in data:
        c.slug = slugify(data.get("slug") or c.name)
    if "description" in data:
        c.description = data.get("description")
    if "menu_order" in data:
        c.menu_order = parse_opt_int(data.get("menu_order")) or 0
    if "parent" in data:
        parent_id, problem = _resolve_parent(data.get("parent"), c)
        if problem:
            return err(problem, 400)
        c.parent_id = parent_id

    c.date_modified = utcnow()
    db.session.commit()
    return ok(c.as_dict(), "Category updated")


@bp.delete("/<int:cid>")
@staff_required
def delete_category(cid):
    c = db.get_or_404(Category, cid)
    if Product.query.filter_by(category_id=cid).first():
        return err("cannot delete: category has products", 409)
    # children move up to the top level
    for child in list(c.children):
        child.parent_id = None
    db.session.delete(c)
    db.session.commit()
    logger.info("category deleted id=%s", cid)
    return ok({"id": cid}, "Category deleted")


@bp.put("/reorder")
@staff_required
def reorder_categories():
    """
    Body: {"items": [{"id": 3, "menu_order": 0}, ...]}
    """
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if not isinstance(items, list) or not items:
        return err("items must be a non-empty list", 400)

    wanted = {}
    for entry in items:
        cid = parse_opt_int((entry or {}).get("id")) if isinstance(entry, dict) else None
        order = parse_opt_int(entry.get("menu_order")) if cid else None
        if cid is None or order is None:
            return err("each item needs an integer id and menu_order", 400)
        wanted[cid] = order

    found = {c.id: c for c in Category.query.filter(Category.id.in_(list(wanted))).all()}
    missing = [cid for cid in wanted if cid not in found]
    if missing:
        return err("some categories were not found", 404, {"missing": missing})

    for cid, order in wanted.items():
        found[cid].menu_order = order
    db.session.commit()
    return ok([found[cid].as_dict() for cid in wanted], "Categories reordered")
