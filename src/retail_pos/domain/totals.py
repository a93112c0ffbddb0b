from __future__ import annotations
from decimal import Decimal
from typing import Optional, Sequence

from retail_pos.domain.discounts import ZERO, quantize, resolve_discount, subtotal_of
from retail_pos.domain.models import (
    CartLine,
    CheckoutTotals,
    DiscountSpec,
    LineAmounts,
    PromoCode,
)


def apportion(line_subtotals: Sequence[Decimal], discount: Decimal) -> list[Decimal]:
    """
    Split `discount` across lines in proportion to their subtotals.

    Shares are quantized and never exceed their line's subtotal. The rounding
    remainder goes to the largest lines that still have room, so the parts add
    up to `discount` exactly. A zero subtotal gives every line 0.
    """
    subtotal = sum(line_subtotals, ZERO)
    if not line_subtotals or subtotal <= 0 or discount <= 0:
        return [ZERO for _ in line_subtotals]
    shares = [min(quantize(discount * ls / subtotal), ls) for ls in line_subtotals]
    remainder = discount - sum(shares, ZERO)
    for i in sorted(range(len(shares)), key=lambda i: line_subtotals[i], reverse=True):
        if remainder == 0:
            break
        if remainder > 0:
            step = min(remainder, line_subtotals[i] - shares[i])
        else:
            step = max(remainder, -shares[i])
        shares[i] += step
        remainder -= step
    return shares


def compute_totals(
    lines: Sequence[CartLine],
    spec: Optional[DiscountSpec] = None,
    promo: Optional[PromoCode] = None,
) -> CheckoutTotals:
    lines = list(lines)
    subtotal = subtotal_of(lines)
    discount = resolve_discount(lines, spec, promo)
    gross_profit = sum((line.margin for line in lines), ZERO)

    line_subtotals = [line.subtotal for line in lines]
    amounts = []
    for line, ls, ld in zip(lines, line_subtotals, apportion(line_subtotals, discount)):
        amounts.append(LineAmounts(
            item_id=line.item_id,
            line_subtotal=ls,
            line_discount=ld,
            line_total=ls - ld,
            line_profit=line.margin - ld,
        ))

    return CheckoutTotals(
        subtotal=subtotal,
        discount=discount,
        total=subtotal - discount,
        gross_profit=gross_profit,
        # discount reduces profit only, cost basis stays as bought
        net_profit=gross_profit - discount,
        item_count=sum(line.quantity for line in lines),
        lines=tuple(amounts),
    )
