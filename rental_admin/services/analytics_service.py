# rental_admin/services/analytics_service.py
"""
Business reports over orders, customers and products.

Every report loads the rows of its window once and reduces them in memory;
nothing is cached. Money is summed as Decimal and only rounded when the
report is built. Empty windows produce zero-valued reports.
"""
import logging
import math
import statistics
from collections import defaultdict
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..model import Order, OrderItem, Product, User
from ..utils.dates import iso, resolve_range, utcnow
from ..utils.money import D, round_to

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5
PICKUP_LABEL = "Store Pickup"

VALUE_RANGES = [
    ("$0 - $50,000", 0, 50000),
    ("$50,001 - $100,000", 50000, 100000),
    ("$100,001 - $200,000", 100000, 200000),
    ("$200,001 - $500,000", 200000, 500000),
    ("$500,001+", 500000, None),
]


def _pct(part, whole, places=2):
    return round_to(D(part) * 100 / D(whole), places) if whole else 0


def _avg(total, count, places=0):
    return round_to(D(total) / D(count), places) if count else 0


def _month(dt):
    return dt.strftime("%Y-%m") if dt else "unknown"


def _total(order):
    return D(order.calculated_total or 0)


def _month_start(now):
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _orders_between(start, end):
    return (Order.query
            .filter(Order.date_created >= start, Order.date_created <= end)
            .order_by(Order.date_created.asc(), Order.id.asc())
            .all())


# ------------------------ users ------------------------

def user_analytics(orders, customers, now=None):
    now = now or utcnow()
    total = len(customers)
    active = {o.customer_id for o in orders if o.customer_id}

    by_type = {"persona": 0, "empresa": 0}
    cities = defaultdict(int)
    for u in customers:
        if u.customer_type in by_type:
            by_type[u.customer_type] += 1
        if u.city:
            cities[u.city] += 1

    this_month = _month_start(now)
    last_month = _month_start(this_month - timedelta(days=1))
    new_this_month = sum(1 for u in customers if u.created_at and u.created_at >= this_month)
    new_last_month = sum(1 for u in customers
                         if u.created_at and last_month <= u.created_at < this_month)

    return {
        "total_users": total,
        "active_users": len(active),
        "users_by_type": by_type,
        "users_by_city": [
            {"city": c, "count": n}
            for c, n in sorted(cities.items(), key=lambda kv: (-kv[1], kv[0]))[:10]
        ],
        "users_with_terms_accepted": sum(1 for u in customers if u.terms_accepted),
        "conversion_rate": _pct(len(active), total),
        "new_users_this_month": new_this_month,
        "user_growth_rate": _pct(new_this_month - new_last_month, new_last_month),
    }


# ------------------------ products ------------------------

def _product_stats(orders):
    stats = {}
    for o in orders:
        days = o.num_days or 1
        for item in o.items:
            if not item.product_id:
                continue
            s = stats.setdefault(item.product_id, {
                "name": item.name or "Unnamed product",
                "sku": item.sku or "",
                "total_rentals": 0,
                "revenue": D(0),
            })
            s["total_rentals"] += item.quantity or 1
            s["revenue"] += D(item.price or 0) * (item.quantity or 1) * days
    return stats


def product_analytics(orders, products):
    stats = _product_stats(orders)

    most_rented = sorted(stats.items(), key=lambda kv: (-kv[1]["total_rentals"], kv[0]))[:10]

    categories = {}
    for p in products:
        name = p.category.name if p.category else "Uncategorized"
        c = categories.setdefault(name, {"product_count": 0, "revenue": D(0), "price_sum": D(0)})
        c["product_count"] += 1
        c["price_sum"] += D(p.price or 0)
        if p.id in stats:
            c["revenue"] += stats[p.id]["revenue"]

    by_revenue = sorted(stats.items(), key=lambda kv: (-kv[1]["revenue"], kv[0]))[:20]

    return {
        "total_products": len(products),
        "active_products": sum(1 for p in products if p.stock_status == "instock"),
        "most_rented_products": [
            {"id": pid, "name": s["name"], "sku": s["sku"],
             "total_rentals": s["total_rentals"], "revenue": round_to(s["revenue"])}
            for pid, s in most_rented
        ],
        "categories_performance": sorted(
            [
                {"category": name, "product_count": c["product_count"],
                 "total_revenue": round_to(c["revenue"]),
                 "avg_price": _avg(c["price_sum"], c["product_count"])}
                for name, c in categories.items()
            ],
            key=lambda c: (-c["total_revenue"], c["category"]),
        ),
        "stock_status": {
            "in_stock": sum(1 for p in products if p.stock_status == "instock"),
            "out_of_stock": sum(1 for p in products if p.stock_status == "outofstock"),
            "on_backorder": sum(1 for p in products if p.stock_status == "onbackorder"),
            "low_stock": sum(1 for p in products
                             if p.stock_status == "instock" and p.stock_quantity is not None
                             and p.stock_quantity <= LOW_STOCK_THRESHOLD),
        },
        "revenue_by_product": [
            {"product_id": pid, "name": s["name"], "revenue": round_to(s["revenue"])}
            for pid, s in by_revenue
        ],
    }


# ------------------------ orders ------------------------

def _value_distribution(orders):
    values = sorted(_total(o) for o in orders if _total(o) > 0)
    ranges = []
    for label, lo, hi in VALUE_RANGES:
        count = sum(1 for v in values if v > lo and (hi is None or v <= hi))
        ranges.append({"range": label, "count": count, "percentage": _pct(count, len(values), 1)})
    return {
        "ranges": ranges,
        "average_order_value": _avg(sum(values, D(0)), len(values)),
        "median_order_value": round_to(statistics.median(values)) if values else 0,
    }


def order_analytics(orders):
    total = len(orders)

    by_status = defaultdict(int)
    monthly = {}
    payments = {}
    customers = {}
    projects = {}
    for o in orders:
        by_status[o.status or "unknown"] += 1

        m = monthly.setdefault(_month(o.date_created),
                               {"total_orders": 0, "completed_orders": 0, "revenue": D(0)})
        m["total_orders"] += 1
        if o.status == "completed":
            m["completed_orders"] += 1
            m["revenue"] += _total(o)

        p = payments.setdefault(o.payment_method or "Not specified", {"count": 0, "total_amount": D(0)})
        p["count"] += 1
        p["total_amount"] += _total(o)

        if o.customer_id:
            c = customers.setdefault(o.customer_id, {
                "customer_name": o.customer_name or "Unnamed customer",
                "order_count": 0, "total_spent": D(0),
            })
            c["order_count"] += 1
            c["total_spent"] += _total(o)

        pr = projects.setdefault(o.project_name or "No project",
                                 {"order_count": 0, "total_revenue": D(0), "durations": []})
        pr["order_count"] += 1
        pr["total_revenue"] += _total(o)
        if o.start_date and o.end_date and (o.end_date - o.start_date).days > 0:
            pr["durations"].append((o.end_date - o.start_date).days)

    processing = [
        (o.date_completed - o.date_created).total_seconds() / 86400
        for o in orders
        if o.status == "completed" and o.date_created and o.date_completed
    ]
    completed = by_status.get("completed", 0)
    cancelled = by_status.get("cancelled", 0) + by_status.get("failed", 0)

    return {
        "total_orders": total,
        "orders_by_status": [
            {"status": s, "count": n, "percentage": _pct(n, total, 1)}
            for s, n in sorted(by_status.items(), key=lambda kv: (-kv[1], kv[0]))
        ],
        "monthly_order_trends": [
            {"month": month, "total_orders": m["total_orders"],
             "completed_orders": m["completed_orders"], "revenue": round_to(m["revenue"])}
            for month, m in sorted(monthly.items())
        ],
        "average_order_processing_time": _avg(sum(processing), len(processing), 1),
        "orders_by_payment_method": [
            {"method": method, "count": p["count"], "total_amount": round_to(p["total_amount"])}
            for method, p in sorted(payments.items(), key=lambda kv: (-kv[1]["count"], kv[0]))
        ],
        "top_customers": [
            {"customer_id": cid, "customer_name": c["customer_name"],
             "order_count": c["order_count"], "total_spent": round_to(c["total_spent"])}
            for cid, c in sorted(customers.items(), key=lambda kv: (-kv[1]["total_spent"], kv[0]))[:10]
        ],
        "order_value_distribution": _value_distribution(orders),
        "project_analysis": [
            {"project_name": name, "order_count": pr["order_count"],
             "total_revenue": round_to(pr["total_revenue"]),
             "avg_duration": _avg(sum(pr["durations"]), len(pr["durations"]), 1)}
            for name, pr in sorted(projects.items(),
                                   key=lambda kv: (-kv[1]["total_revenue"], kv[0]))[:10]
        ],
        "completion_rate": _pct(completed, total, 1),
        "cancellation_rate": _pct(cancelled, total, 1),
    }


# ------------------------ coupons ------------------------

def coupon_analytics(orders):
    discounted = [o for o in orders if D(o.calculated_discount or 0) > 0]
    plain = [o for o in orders if D(o.calculated_discount or 0) <= 0]
    total_discount = sum((D(o.calculated_discount) for o in discounted), D(0))

    codes = {}
    monthly = {}
    for o in discounted:
        for line in o.coupon_lines or []:
            code = line.get("code") or "No code"
            c = codes.setdefault(code, {"usage_count": 0, "total_discount": D(0)})
            c["usage_count"] += 1
            c["total_discount"] += D(line.get("discount") or o.calculated_discount or 0)
        m = monthly.setdefault(_month(o.date_created), {"total_discount": D(0), "order_count": 0})
        m["total_discount"] += D(o.calculated_discount)
        m["order_count"] += 1

    return {
        "total_coupons_used": len(discounted),
        "total_discount_amount": round_to(total_discount),
        "avg_discount_per_order": _avg(total_discount, len(discounted)),
        "most_used_coupons": [
            {"code": code, "usage_count": c["usage_count"], "total_discount": round_to(c["total_discount"])}
            for code, c in sorted(codes.items(), key=lambda kv: (-kv[1]["usage_count"], kv[0]))[:10]
        ],
        "discount_impact": {
            "orders_with_discount": len(discounted),
            "orders_without_discount": len(plain),
            "avg_order_value_with_discount": _avg(sum(map(_total, discounted), D(0)), len(discounted)),
            "avg_order_value_without_discount": _avg(sum(map(_total, plain), D(0)), len(plain)),
        },
        "discount_trends": [
            {"month": month, "total_discount": round_to(m["total_discount"]), "order_count": m["order_count"]}
            for month, m in sorted(monthly.items())
        ],
    }


# ------------------------ shipping ------------------------

def _shipping(o):
    return D(o.shipping_total or 0)


def shipping_analytics(orders):
    revenue = sum(map(_shipping, orders), D(0))
    shipped = [o for o in orders if _shipping(o) > 0]

    methods = {}
    regions = {}
    monthly = {}
    for o in orders:
        lines = o.shipping_lines or []
        if lines:
            for line in lines:
                key = line.get("method_title") or str(line.get("method_id") or "Unknown method")
                m = methods.setdefault(key, {"count": 0, "total_revenue": D(0)})
                m["count"] += 1
                m["total_revenue"] += D(line.get("total") or o.shipping_total or 0)
        elif _shipping(o) == 0:
            methods.setdefault(PICKUP_LABEL, {"count": 0, "total_revenue": D(0)})["count"] += 1

        r = regions.setdefault(o.billing_region or o.billing_city or "Unknown region",
                               {"order_count": 0, "total_shipping_cost": D(0)})
        r["order_count"] += 1
        r["total_shipping_cost"] += _shipping(o)

        t = monthly.setdefault(_month(o.date_created), {"total_shipping": D(0), "order_count": 0})
        t["total_shipping"] += _shipping(o)
        t["order_count"] += 1

    return {
        "total_shipping_revenue": round_to(revenue),
        "avg_shipping_cost": _avg(revenue, len(shipped)),
        "shipping_methods": [
            {"method": key, "count": m["count"], "total_revenue": round_to(m["total_revenue"]),
             "avg_cost": _avg(m["total_revenue"], m["count"])}
            for key, m in sorted(methods.items(), key=lambda kv: (-kv[1]["count"], kv[0]))
        ],
        "delivery_regions": [
            {"region": key, "order_count": r["order_count"],
             "total_shipping_cost": round_to(r["total_shipping_cost"])}
            for key, r in sorted(regions.items(), key=lambda kv: (-kv[1]["order_count"], kv[0]))[:10]
        ],
        "pickup_vs_shipping": {"pickup": len(orders) - len(shipped), "shipping": len(shipped)},
        "shipping_trends": [
            {"month": month, "total_shipping": round_to(t["total_shipping"]), "order_count": t["order_count"]}
            for month, t in sorted(monthly.items())
        ],
    }


# ------------------------ KPIs ------------------------

def kpi_analytics(orders, customers, start, end):
    completed = [o for o in orders if o.status == "completed"]
    revenue = sum(map(_total, completed), D(0))
    aov = D(revenue) / len(completed) if completed else D(0)

    per_customer = defaultdict(int)
    for o in completed:
        per_customer[o.customer_id] += 1
    buyers = len(per_customer)
    orders_per_customer = D(sum(per_customer.values())) / buyers if buyers else D(0)
    repeat = sum(1 for n in per_customer.values() if n > 1)
    retention = _pct(repeat, buyers)

    months = max(1, math.ceil((end - start).total_seconds() / (30 * 86400)))
    new_customers = sum(1 for u in customers if u.created_at and start <= u.created_at <= end)

    return {
        "customer_lifetime_value": round_to(aov * orders_per_customer),
        "average_order_value": round_to(aov),
        "customer_retention_rate": retention,
        # 100 - retention; there is no cohort tracking behind it
        "churn_rate": round_to(100 - D(retention), 2) if buyers else 0,
        "conversion_funnel": {
            "total_visitors": len(customers),
            "registered_users": len(customers),
            "users_with_orders": len({o.customer_id for o in orders if o.customer_id}),
            "completed_orders": len(completed),
        },
        "monthly_recurring_revenue": round_to(revenue / months),
        # marketing spend assumed at 10% of revenue
        "customer_acquisition_cost": _avg(revenue * D("0.1"), new_customers),
    }


def get_advanced_analytics(start_date=None, end_date=None, now=None):
    """
    Full dashboard report for [start_date, end_date].

    Raises ValueError for unparseable dates or an inverted range.
    """
    start, end = resolve_range(
        start_date, end_date,
        default_days=current_app.config.get("ANALYTICS_DEFAULT_DAYS", 30),
        now=now,
    )
    orders = _orders_between(start, end)
    customers = User.query.filter(User.role == "customer").all()
    products = Product.query.order_by(Product.id).all()

    logger.info("analytics window %s..%s orders=%d", start.date(), end.date(), len(orders))
    return {
        "users": user_analytics(orders, customers, now=now),
        "products": product_analytics(orders, products),
        "orders": order_analytics(orders),
        "coupons": coupon_analytics(orders),
        "shipping": shipping_analytics(orders),
        "kpis": kpi_analytics(orders, customers, start, end),
        "date_range": {"start": start.date().isoformat(), "end": end.date().isoformat()},
    }


# ------------------------ product rentals ------------------------

def get_product_rentals(product_id, start=None, end=None, page_size=None):
    """
    Every order line that rented `product_id`, newest first.

    Rows are read in pages of RENTALS_PAGE_SIZE until a short page comes back.
    """
    page_size = page_size or current_app.config.get("RENTALS_PAGE_SIZE", 1000)

    q = (db.session.query(OrderItem, Order)
         .join(Order, OrderItem.order_id == Order.id)
         .filter(OrderItem.product_id == product_id))
    if start:
        q = q.filter(Order.date_created >= start)
    if end:
        q = q.filter(Order.date_created <= end)
    q = q.order_by(Order.date_created.desc(), Order.id.desc(), OrderItem.id.asc())

    rentals = []
    offset = 0
    while True:
        page = q.offset(offset).limit(page_size).all()
        for item, order in page:
            quantity = item.quantity or 1
            days = order.num_days or 1
            rentals.append({
                "order_id": order.id,
                "order_status": order.status or "unknown",
                "start_date": iso(order.start_date),
                "end_date": iso(order.end_date),
                "customer": order.customer_name or "Unnamed customer",
                "customer_email": order.billing_email or "",
                "unit_price": float(item.price or 0),
                "quantity": quantity,
                "num_days": days,
                "total": round_to(D(item.price or 0) * quantity * days, 2),
                "date_created": iso(order.date_created),
            })
        if len(page) < page_size:
            break
        offset += page_size
    return rentals
