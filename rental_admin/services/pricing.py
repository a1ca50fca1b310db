# rental_admin/services/pricing.py
"""
Order pricing shared by every place that shows or stores a total.

The composition order is fixed:

  1) products subtotal   = sum(price * qty) * rental days
  2) subtotal            = products subtotal + shipping - (manual + coupon discount)
  3) iva                 = subtotal * 19%   (only when IVA applies)
  4) total               = subtotal + iva   (reserve = 25% of total)

Every step is rounded half-up to cents before the next one uses it.
"""
from typing import Iterable, NamedTuple, Optional

from ..utils.money import D, Money, round_money

IVA_RATE = D("0.19")
RESERVE_RATE = D("0.25")

DISCOUNT_TYPES = ("percent", "fixed_cart", "fixed_product")


class LineItem(NamedTuple):
    product_id: Optional[int]
    quantity: int
    price: Money


class OrderTotals(NamedTuple):
    products_subtotal: Money
    shipping: Money
    discount: Money
    subtotal: Money
    iva: Money
    total: Money
    reserve: Money

    def as_api(self):
        return {k: float(v) for k, v in self._asdict().items()}


def compute_discount(discount_type: str, amount, subtotal, maximum_amount=None,
                     line_items: Optional[Iterable[LineItem]] = None,
                     product_ids: Optional[Iterable[int]] = None) -> Money:
    """
    Discount a coupon grants on `subtotal`.

    `fixed_product` grants `amount` per unit of each matching line item
    (all lines when `product_ids` is empty). Without line items only the
    flat amount is known, so it is used as is.
    """
    subtotal = round_money(subtotal)
    if subtotal <= 0:
        return round_money(0)
    amount = D(amount)

    if discount_type == "percent":
        discount = round_money(subtotal * amount / D(100))
    elif discount_type == "fixed_cart":
        discount = round_money(amount)
    elif discount_type == "fixed_product":
        if line_items is None:
            discount = round_money(amount)
        else:
            targets = set(product_ids or ())
            units = sum(int(li.quantity) for li in line_items
                        if not targets or li.product_id in targets)
            discount = round_money(amount * units)
    else:
        raise ValueError(f"unknown discount type: {discount_type}")

    # cap first, then never more than the cart
    if maximum_amount is not None and D(maximum_amount) > 0 and discount > D(maximum_amount):
        discount = round_money(maximum_amount)

    return max(round_money(0), min(discount, subtotal))


def products_subtotal(line_items: Iterable[LineItem], num_days: int = 1) -> Money:
    items_total = round_money(0)
    for li in line_items:
        items_total = round_money(items_total + round_money(D(li.price) * int(li.quantity)))
    return round_money(items_total * int(num_days))


def compute_totals(line_items: Iterable[LineItem], num_days: int = 1, shipping_cost=0,
                   manual_discount=0, coupon_discount=0, apply_iva: bool = True) -> OrderTotals:
    if int(num_days) < 1:
        raise ValueError("num_days must be at least 1")
    for value in (shipping_cost, manual_discount, coupon_discount):
        if D(value) < 0:
            raise ValueError("amounts cannot be negative")

    base = products_subtotal(line_items, num_days)
    shipping = round_money(shipping_cost)
    discount = round_money(round_money(manual_discount) + round_money(coupon_discount))

    subtotal = round_money(base + shipping)
    subtotal = max(round_money(0), round_money(subtotal - discount))

    iva = round_money(subtotal * IVA_RATE) if apply_iva else round_money(0)
    total = round_money(subtotal + iva)
    reserve = round_money(total * RESERVE_RATE)

    return OrderTotals(
        products_subtotal=base,
        shipping=shipping,
        discount=discount,
        subtotal=subtotal,
        iva=iva,
        total=total,
        reserve=reserve,
    )


def net_from_gross(total) -> Money:
    """Strip IVA back out of a gross total."""
    return round_money(D(total) / (D(1) + IVA_RATE))
