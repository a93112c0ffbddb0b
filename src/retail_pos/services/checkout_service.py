from __future__ import annotations
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from retail_pos import settings
from retail_pos.adapters import db as dbx
from retail_pos.domain import discounts
from retail_pos.domain.cart import Cart
from retail_pos.domain.errors import PromoError, StockConflictError, ValidationError
from retail_pos.domain.models import (
    CartLine,
    CatalogItem,
    CheckoutTotals,
    CommitResult,
    DiscountSpec,
    FixedDiscount,
    PercentageDiscount,
    PromoCode,
    PromoDiscount,
    SaleRecord,
    SessionContext,
)
from retail_pos.domain.totals import compute_totals

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckoutSession:
    """
    One operator's point-of-sale session: catalog snapshot, cart, discount
    and payment method. Every store call is scoped by the session context.
    """

    def __init__(self, ctx: SessionContext, clock: Callable[[], datetime] = utcnow):
        self.ctx = ctx
        self.clock = clock
        self.catalog: list[CatalogItem] = []
        self.cart = Cart()
        self.discount: Optional[DiscountSpec] = None
        self.promo: Optional[PromoCode] = None
        self.payment_method = settings.DEFAULT_PAYMENT_METHOD

    # ---------- catalog ----------

    def refresh_catalog(self) -> list[str]:
        """Re-fetch the snapshot and re-bind the cart to it; returns adjusted item ids."""
        self._require_tenant()
        self.catalog = dbx.list_available_products(self.ctx.tenant_id)
        adjusted = self.cart.reconcile(self.catalog)
        if adjusted:
            logger.info("cart adjusted after catalog refresh: %s", adjusted)
        return adjusted

    def search(self, term: str) -> list[CatalogItem]:
        term = (term or "").strip().lower()
        if not term:
            return []
        return [
            item for item in self.catalog
            if term in item.name.lower() or (item.barcode and term == item.barcode.lower())
        ]

    def find_item(self, item_id: str) -> CatalogItem:
        for item in self.catalog:
            if item.id == item_id:
                return item
        raise ValidationError(f"Product {item_id} is not available")

    # ---------- cart ----------

    def add_item(self, item_id: str) -> CartLine:
        return self.cart.add_item(self.find_item(item_id))

    def change_quantity(self, item_id: str, delta: int) -> Optional[CartLine]:
        return self.cart.change_quantity(item_id, delta)

    def remove_item(self, item_id: str) -> None:
        self.cart.remove_item(item_id)

    def set_line_price(self, item_id: str, raw_price) -> CartLine:
        return self.cart.set_line_price(item_id, discounts.parse_amount(raw_price))

    def clear_cart(self) -> None:
        self.cart.clear()

    # ---------- discount ----------

    def set_percentage_discount(self, raw_value) -> None:
        value = discounts.parse_amount(raw_value)
        if not (0 < value <= 100):
            raise ValidationError("Percentage must be between 0 and 100")
        self._switch(PercentageDiscount(value))

    def set_fixed_discount(self, raw_value) -> None:
        value = discounts.parse_amount(raw_value)
        if value <= 0:
            raise ValidationError("Discount amount must be greater than 0")
        self._switch(FixedDiscount(value))

    def apply_promo_code(self, code: str) -> PromoCode:
        """Look the code up and validate it; on success it stays applied for the session."""
        self._require_tenant()
        code = discounts.normalize_code(code)
        if not code:
            raise ValidationError("Enter a promo code")
        self._switch(PromoDiscount(code))
        promo = dbx.find_promo_code(self.ctx.tenant_id, code)
        try:
            self.promo = discounts.validate_promo(promo, code, self.clock())
        except ValidationError as e:
            logger.info("promo %s rejected: %s", code, e)
            raise
        return self.promo

    def clear_discount(self) -> None:
        self.discount = None
        self.promo = None

    def _switch(self, spec: DiscountSpec) -> None:
        # a new kind (or a new code) drops the validated promo
        self.discount = spec
        self.promo = None

    # ---------- totals / commit ----------

    def set_payment_method(self, method: str) -> None:
        if method not in settings.PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method: {method}")
        self.payment_method = method

    def totals(self) -> CheckoutTotals:
        return compute_totals(self.cart.lines, self.discount, self.promo)

    def build_records(self, totals: CheckoutTotals, created_at: datetime) -> list[SaleRecord]:
        discount_type, discount_value, promo_code = discounts.describe(self.discount, self.promo)
        amounts = {la.item_id: la for la in totals.lines}
        records = []
        for line in self.cart.lines:
            la = amounts[line.item_id]
            records.append(SaleRecord(
                tenant_id=self.ctx.tenant_id,
                product_id=line.item_id,
                product_name=line.item.name,
                quantity=line.quantity,
                unit_price=line.price,
                total_amount=la.line_total,
                profit=la.line_profit,
                payment_method=self.payment_method,
                created_by=self.ctx.operator_id,
                created_at=created_at,
                discount_type=discount_type,
                discount_value=discount_value,
                discount_amount=la.line_discount if discount_type else None,
                promo_code=promo_code,
            ))
        return records

    def commit(self) -> CommitResult:
        if len(self.cart) == 0:
            raise ValidationError("Please add items to cart before checkout")
        if not self.ctx.tenant_id or not self.ctx.operator_id:
            raise ValidationError("User session not found")

        totals = self.totals()
        records = self.build_records(totals, self.clock())
        promo = self.promo if isinstance(self.discount, PromoDiscount) else None

        try:
            dbx.commit_sale(
                self.ctx.tenant_id,
                records,
                promo_id=promo.id if promo else None,
                promo_code=promo.code if promo else "",
            )
        except StockConflictError as e:
            logger.warning("stock conflict on %s, refreshing catalog", e.product_id)
            self.refresh_catalog()
            raise
        except PromoError:
            # usage limit hit by another checkout since validation
            self.promo = None
            raise

        logger.info(
            "sale committed: tenant=%s lines=%d total=%s discount=%s by=%s",
            self.ctx.tenant_id, len(records), totals.total, totals.discount, self.ctx.operator_id,
        )
        self.cart.clear()
        self.clear_discount()
        self.payment_method = settings.DEFAULT_PAYMENT_METHOD
        self.refresh_catalog()
        return CommitResult(records=records, totals=totals)

    def _require_tenant(self) -> None:
        if not self.ctx.tenant_id:
            raise ValidationError("User session not found")


def format_money(amount: Decimal | float, currency: str = settings.CURRENCY) -> str:
    return f"{currency} {amount:,.2f}"
