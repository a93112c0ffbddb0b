from __future__ import annotations
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional

from retail_pos import settings
from retail_pos.domain.errors import (
    PromoExpired,
    PromoLimitReached,
    PromoNotFound,
    ValidationError,
)
from retail_pos.domain.models import (
    CartLine,
    DiscountSpec,
    FixedDiscount,
    PercentageDiscount,
    PromoCode,
    PromoDiscount,
)

HUNDRED = Decimal(100)
ZERO = Decimal(0)


def quantize(amount: Decimal) -> Decimal:
    return amount.quantize(settings.MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def parse_amount(raw) -> Decimal:
    """Operator input (str/int/float/Decimal) -> Decimal; rejects NaN/inf/garbage."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError("A value is required")
    try:
        value = Decimal(str(raw).strip().replace(",", ""))
    except InvalidOperation:
        raise ValidationError(f"Not a number: {raw!r}") from None
    if not value.is_finite():
        raise ValidationError(f"Not a number: {raw!r}")
    return value


def subtotal_of(lines: Iterable[CartLine]) -> Decimal:
    return sum((line.subtotal for line in lines), ZERO)


def _percentage_of(subtotal: Decimal, value: Optional[Decimal]) -> Decimal:
    if value is None or not (ZERO < value <= HUNDRED):
        return ZERO
    return quantize(subtotal * value / HUNDRED)


def _fixed_of(subtotal: Decimal, value: Optional[Decimal]) -> Decimal:
    if value is None or value <= ZERO:
        return ZERO
    return quantize(min(value, subtotal))


def _promo_percentage_of(subtotal: Decimal, value: Decimal) -> Decimal:
    # stored promos are not range checked, anything above 100% caps at the subtotal
    if value <= ZERO:
        return ZERO
    return min(quantize(subtotal * value / HUNDRED), subtotal)


def resolve_discount(
    lines: Iterable[CartLine],
    spec: Optional[DiscountSpec],
    promo: Optional[PromoCode] = None,
) -> Decimal:
    """
    Monetary deduction for the active discount kind, always within [0, subtotal].

    `promo` is the record validated by `validate_promo`; a promo discount
    without one deducts nothing.
    """
    subtotal = subtotal_of(lines)
    if spec is None:
        amount = ZERO
    elif isinstance(spec, PercentageDiscount):
        amount = _percentage_of(subtotal, spec.value)
    elif isinstance(spec, FixedDiscount):
        amount = _fixed_of(subtotal, spec.value)
    elif isinstance(spec, PromoDiscount):
        if promo is None or normalize_code(promo.code) != normalize_code(spec.code):
            amount = ZERO
        elif promo.discount_type == "percentage":
            amount = _promo_percentage_of(subtotal, promo.discount_value)
        elif promo.discount_type == "fixed":
            amount = _fixed_of(subtotal, promo.discount_value)
        else:
            raise ValueError(f"Unknown promo discount type: {promo.discount_type}")
    else:
        raise TypeError(f"Unknown discount spec: {spec!r}")
    return max(ZERO, min(amount, subtotal))


def validate_promo(promo: Optional[PromoCode], code: str, now: datetime) -> PromoCode:
    """Raise the matching PromoError unless `promo` is usable at `now`."""
    code = normalize_code(code)
    if promo is None or not promo.is_active:
        raise PromoNotFound(code)
    if promo.valid_from is not None and promo.valid_from > now:
        raise PromoNotFound(code, f"Promo code {code} is not valid yet")
    if promo.valid_until is not None and promo.valid_until < now:
        raise PromoExpired(code)
    if promo.usage_limit is not None and promo.times_used >= promo.usage_limit:
        raise PromoLimitReached(code)
    return promo


def describe(spec: Optional[DiscountSpec], promo: Optional[PromoCode] = None) -> tuple[Optional[str], Optional[Decimal], Optional[str]]:
    """(discount_type, discount_value, promo_code) as stored on each sale line."""
    if spec is None:
        return None, None, None
    if isinstance(spec, PercentageDiscount):
        return "percentage", spec.value, None
    if isinstance(spec, FixedDiscount):
        return "fixed", spec.value, None
    if isinstance(spec, PromoDiscount):
        if promo is None:
            return None, None, None
        return promo.discount_type, promo.discount_value, normalize_code(promo.code)
    raise TypeError(f"Unknown discount spec: {spec!r}")
