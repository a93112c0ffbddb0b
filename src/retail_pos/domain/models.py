from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from retail_pos import settings


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str
    buying_price: Decimal
    selling_price: Decimal
    stock: int
    low_stock_threshold: int = settings.DEFAULT_LOW_STOCK_THRESHOLD
    category: Optional[str] = None
    barcode: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "CatalogItem":
        return cls(
            id=str(row["id"]),
            name=row["name"],
            buying_price=Decimal(str(row["buying_price"])),
            selling_price=Decimal(str(row["selling_price"])),
            stock=int(row["stock"]),
            low_stock_threshold=int(row.get("low_stock_threshold") or settings.DEFAULT_LOW_STOCK_THRESHOLD),
            category=row.get("category"),
            barcode=row.get("barcode"),
        )


@dataclass
class CartLine:
    item: CatalogItem
    quantity: int
    price: Decimal

    @property
    def item_id(self) -> str:
        return self.item.id

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity

    @property
    def margin(self) -> Decimal:
        return (self.price - self.item.buying_price) * self.quantity


# Discount kinds. Exactly one is active at a time; None means no discount.
@dataclass(frozen=True)
class PercentageDiscount:
    value: Decimal
    kind = "percentage"


@dataclass(frozen=True)
class FixedDiscount:
    value: Decimal
    kind = "fixed"


@dataclass(frozen=True)
class PromoDiscount:
    code: str
    kind = "promo"


DiscountSpec = Union[PercentageDiscount, FixedDiscount, PromoDiscount]


@dataclass(frozen=True)
class PromoCode:
    id: str
    code: str
    discount_type: str  # "percentage" | "fixed"
    discount_value: Decimal
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = None
    times_used: int = 0

    @classmethod
    def from_row(cls, row: dict) -> "PromoCode":
        return cls(
            id=str(row["id"]),
            code=row["code"],
            discount_type=row["discount_type"],
            discount_value=Decimal(str(row["discount_value"])),
            is_active=bool(row["is_active"]),
            valid_from=row.get("valid_from"),
            valid_until=row.get("valid_until"),
            usage_limit=row.get("usage_limit"),
            times_used=int(row.get("times_used") or 0),
        )


@dataclass(frozen=True)
class SessionContext:
    tenant_id: Optional[str]
    operator_id: Optional[str]
    operator_email: Optional[str] = None


@dataclass(frozen=True)
class LineAmounts:
    item_id: str
    line_subtotal: Decimal
    line_discount: Decimal
    line_total: Decimal
    line_profit: Decimal

    @property
    def below_cost(self) -> bool:
        return self.line_profit < 0


@dataclass(frozen=True)
class CheckoutTotals:
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    gross_profit: Decimal
    net_profit: Decimal
    item_count: int
    lines: tuple[LineAmounts, ...] = ()

    @property
    def loss_lines(self) -> list[str]:
        return [la.item_id for la in self.lines if la.below_cost]


@dataclass(frozen=True)
class SaleRecord:
    tenant_id: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    profit: Decimal
    payment_method: str
    created_by: str
    created_at: datetime
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    promo_code: Optional[str] = None

    def as_row(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total_amount": self.total_amount,
            "profit": self.profit,
            "payment_method": self.payment_method,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discount_amount": self.discount_amount,
            "promo_code": self.promo_code,
            "created_by": self.created_by,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class ReorderAlert:
    product_name: str
    reorder_quantity: int
    urgency: str
    reason: str

    def as_payload(self) -> dict:
        return {
            "productName": self.product_name,
            "reorderQuantity": self.reorder_quantity,
            "urgency": self.urgency,
            "reason": self.reason,
        }


@dataclass
class CommitResult:
    records: list[SaleRecord]
    totals: CheckoutTotals


@dataclass(frozen=True)
class FraudAlert:
    transaction_id: str
    risk_level: str
    reason: str
    action: str

    def as_payload(self) -> dict:
        return {
            "transactionId": self.transaction_id,
            "riskLevel": self.risk_level,
            "reason": self.reason,
            "action": self.action,
        }
