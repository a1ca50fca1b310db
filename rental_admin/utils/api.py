# --- rental_admin/utils/api.py ---
import math

from flask import jsonify


def api_ok(data=None, message=None):
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def api_error(message, data=None):
    body = {"success": False, "error": message}
    if data:
        body.update(data)
    return body


# ---- standard API response format ------------------------------------------
def ok(data=None, message=None, status=200):
    r = jsonify(api_ok(data, message)); r.status_code = status; return r


def err(message, status=400, data=None):
    r = jsonify(api_error(message, data)); r.status_code = status; return r


def paginate(query, page, limit, serialize, max_limit=100):
    """
    Page a query the way the dashboard tables expect:
    {items, total, page, limit, total_pages}
    """
    page = max(to_int(page, 1), 1)
    limit = min(max(to_int(limit, 10), 1), max_limit)
    paged = query.paginate(page=page, per_page=limit, error_out=False)
    return {
        "items": [serialize(row) for row in paged.items],
        "total": paged.total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil((paged.total or 0) / limit),
    }


def to_int(v, default=None):
    try:
        return int(v)
    except (TypeError, ValueError):
        return default
