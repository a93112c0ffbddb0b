# tests/conftest.py
# In-memory stand-in for the Postgres adapter, patched onto retail_pos.adapters.db.
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from retail_pos.adapters import db as dbx
from retail_pos.domain.errors import CommitError, PromoLimitReached, StockConflictError
from retail_pos.domain.models import CatalogItem, PromoCode, SessionContext

TENANT = "t1"
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_item(id, price, cost, stock, name=None, threshold=5):
    return CatalogItem(
        id=id,
        name=name or f"Item {id}",
        buying_price=Decimal(str(cost)),
        selling_price=Decimal(str(price)),
        stock=stock,
        low_stock_threshold=threshold,
    )


def make_promo(code="SAVE10", kind="percentage", value=10, **kw):
    fields = dict(
        id=f"promo-{code.lower()}",
        code=code,
        discount_type=kind,
        discount_value=Decimal(str(value)),
        is_active=True,
        valid_from=datetime(2026, 1, 1, tzinfo=timezone.utc),
        valid_until=None,
        usage_limit=None,
        times_used=0,
    )
    fields.update(kw)
    return PromoCode(**fields)


class FakeStore:
    def __init__(self):
        self.products: dict[str, CatalogItem] = {}
        self.promos: dict[str, PromoCode] = {}
        self.sales = []
        self.transactions: dict[str, list[dict]] = {}
        self.notifications = []
        self.runs = []
        self.tenants = [TENANT]
        self.fail_insert_at = None
        self.calls = []
        self.names = {}
        self.now = NOW

    def add(self, *items):
        for item in items:
            self.products[item.id] = item

    def _check(self, tenant_id):
        assert tenant_id == TENANT, f"unexpected tenant {tenant_id}"

    # reads
    def list_available_products(self, tenant_id):
        self._check(tenant_id)
        self.calls.append("list_available_products")
        return sorted((p for p in self.products.values() if p.stock > 0), key=lambda p: p.name)

    def list_products(self, tenant_id):
        self._check(tenant_id)
        return sorted(self.products.values(), key=lambda p: p.name)

    def find_promo_code(self, tenant_id, code):
        self._check(tenant_id)
        return self.promos.get(code.upper())

    def fetch_transactions(self, tenant_id, since=None):
        rows = self.transactions.get(tenant_id, [])
        return [r for r in rows if since is None or r["created_at"] >= since]

    def resolve_tenant(self, user_id):
        return TENANT

    def list_tenant_ids(self):
        return list(self.tenants)

    def operator_names(self, user_ids):
        return {u: self.names[u] for u in user_ids if u in self.names}

    def notification_exists(self, tenant_id, type_, since, product_id=None):
        return any(
            n["tenant_id"] == tenant_id and n["type"] == type_ and n["created_at"] >= since
            and (product_id is None or n["metadata"].get("product_id") == product_id)
            for n in self.notifications
        )

    # writes
    def commit_sale(self, tenant_id, records, promo_id=None, promo_code=""):
        self._check(tenant_id)
        products = dict(self.products)
        promos = dict(self.promos)
        written = []
        if promo_id:
            promo = next(p for p in promos.values() if p.id == promo_id)
            if promo.usage_limit is not None and promo.times_used >= promo.usage_limit:
                raise PromoLimitReached(promo_code or promo_id)
            promos[promo.code.upper()] = replace(promo, times_used=promo.times_used + 1)
        for i, rec in enumerate(records):
            if self.fail_insert_at == i:
                raise CommitError("Failed to complete sale")
            written.append(rec)
            current = products[rec.product_id]
            if current.stock < rec.quantity:
                raise StockConflictError(rec.product_id, rec.quantity)
            products[rec.product_id] = replace(current, stock=current.stock - rec.quantity)
        # all lines succeeded: apply atomically
        self.products, self.promos = products, promos
        self.sales.extend(written)

    def insert_notification(self, tenant_id, title, message, type_, metadata):
        if tenant_id == "broken":
            raise RuntimeError("insert failed")
        self.notifications.append(
            {"tenant_id": tenant_id, "title": title, "message": message, "type": type_,
             "metadata": metadata, "created_at": self.now}
        )

    def log_run(self, payload):
        self.runs.append(payload)


@pytest.fixture
def store(monkeypatch):
    fake = FakeStore()
    for name in (
        "list_available_products", "list_products", "find_promo_code", "fetch_transactions",
        "resolve_tenant", "list_tenant_ids", "commit_sale", "insert_notification", "log_run",
        "operator_names", "notification_exists",
    ):
        monkeypatch.setattr(dbx, name, getattr(fake, name))
    return fake


@pytest.fixture
def ctx():
    return SessionContext(tenant_id=TENANT, operator_id="clerk-1", operator_email="clerk@example.com")
