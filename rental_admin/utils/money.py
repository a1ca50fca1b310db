# rental_admin/utils/money.py

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

Money = Decimal

CENT = Decimal("0.01")


def D(x) -> Money:
    if isinstance(x, Decimal):
        d = x
    else:
        try:
            d = Decimal(str(x if x not in (None, "") else "0"))
        except InvalidOperation:
            raise ValueError(f"not a monetary amount: {x!r}")
    # NaN / Infinity parse fine but break comparisons and quantize
    if not d.is_finite():
        raise ValueError(f"not a monetary amount: {x!r}")
    return d


def round_money(x) -> Money:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def round_to(x, places=0) -> float:
    """Half-up rounding for report figures (0 places returns whole units)."""
    exp = Decimal(1).scaleb(-places)
    q = D(x).quantize(exp, rounding=ROUND_HALF_UP)
    return int(q) if places == 0 else float(q)


def to_float(x):
    return float(x) if x is not None else None
