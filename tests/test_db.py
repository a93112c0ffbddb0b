# tests/test_db.py
# Runs the real adapter functions against a recording connection in place of Postgres.
from decimal import Decimal

import psycopg
import pytest

from conftest import NOW, TENANT
from retail_pos.adapters import db as dbx
from retail_pos.domain.errors import CommitError, PromoLimitReached, StockConflictError
from retail_pos.domain.models import SaleRecord

PROMO_BUMP = "UPDATE promo_codes"
SALE_INSERT = "INSERT INTO transactions"
STOCK_DECREMENT = "UPDATE products"


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.rowcount = -1

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        sql = " ".join(sql.split())
        self.conn.statements.append((sql, params))
        for prefix, err in self.conn.errors.items():
            if sql.startswith(prefix):
                raise err
        self.rowcount = 1
        for prefix, count in self.conn.rowcounts.items():
            if sql.startswith(prefix):
                self.rowcount = count

    def fetchall(self):
        return list(self.conn.rows)

    def fetchone(self):
        return self.conn.rows[0] if self.conn.rows else None


class FakeTransaction:
    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.conn.outcome = exc_type or "committed"
        return False


class FakeConnection:
    def __init__(self):
        self.statements = []
        self.rowcounts = {}
        self.errors = {}
        self.rows = []
        self.outcome = None
        self.committed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def cursor(self, row_factory=None):
        return FakeCursor(self)

    def transaction(self):
        return FakeTransaction(self)

    def commit(self):
        self.committed = True

    def sql(self):
        return [s for s, _ in self.statements]


@pytest.fixture
def conn(monkeypatch):
    fake = FakeConnection()
    monkeypatch.setattr(dbx, "_connect", lambda: fake)
    return fake


def record(product_id, quantity=1, **kw):
    fields = dict(
        tenant_id=TENANT,
        product_id=product_id,
        product_name=f"Item {product_id}",
        quantity=quantity,
        unit_price=Decimal("1000"),
        total_amount=Decimal("1000") * quantity,
        profit=Decimal("400") * quantity,
        payment_method="cash",
        created_by="clerk-1",
        created_at=NOW,
    )
    fields.update(kw)
    return SaleRecord(**fields)


def test_commit_sale_runs_bump_then_insert_and_decrement_per_line(conn):
    dbx.commit_sale(TENANT, [record("a", 2), record("b")], promo_id="promo-1", promo_code="SAVE10")

    kinds = [next(p for p in (PROMO_BUMP, SALE_INSERT, STOCK_DECREMENT) if s.startswith(p)) for s in conn.sql()]
    assert kinds == [PROMO_BUMP, SALE_INSERT, STOCK_DECREMENT, SALE_INSERT, STOCK_DECREMENT]
    assert conn.statements[0][1] == ("promo-1", TENANT)
    assert conn.statements[1][1]["product_id"] == "a"
    assert conn.statements[2][1] == (2, "a", TENANT, 2)
    assert conn.outcome == "committed"


def test_commit_sale_without_promo_skips_the_bump(conn):
    dbx.commit_sale(TENANT, [record("a")])
    assert not any(s.startswith(PROMO_BUMP) for s in conn.sql())
    assert conn.outcome == "committed"


def test_stock_decrement_matching_no_row_is_a_conflict(conn):
    conn.rowcounts[STOCK_DECREMENT] = 0

    with pytest.raises(StockConflictError) as exc:
        dbx.commit_sale(TENANT, [record("a", 3), record("b")])

    assert exc.value.product_id == "a"
    assert conn.outcome is StockConflictError
    # nothing runs after the failed decrement
    assert len(conn.statements) == 2


def test_conditional_decrement_guards_against_negative_stock(conn):
    dbx.commit_sale(TENANT, [record("a", 4)])
    sql, params = conn.statements[-1]
    assert "stock >= %s" in sql
    assert params[-1] == 4


def test_promo_bump_matching_no_row_means_limit_reached(conn):
    conn.rowcounts[PROMO_BUMP] = 0

    with pytest.raises(PromoLimitReached) as exc:
        dbx.commit_sale(TENANT, [record("a")], promo_id="promo-1", promo_code="ONCE")

    assert exc.value.code == "ONCE"
    assert conn.outcome is PromoLimitReached
    assert len(conn.statements) == 1


def test_driver_error_becomes_commit_error(conn):
    conn.errors[SALE_INSERT] = psycopg.OperationalError("connection lost")

    with pytest.raises(CommitError, match="Failed to complete sale") as exc:
        dbx.commit_sale(TENANT, [record("a")])

    assert isinstance(exc.value.__cause__, psycopg.OperationalError)
    assert conn.outcome is psycopg.OperationalError


def test_find_promo_code_matches_upper_cased(conn):
    assert dbx.find_promo_code(TENANT, "save10") is None
    sql, params = conn.statements[0]
    assert "UPPER(code) = %s" in sql
    assert params == (TENANT, "SAVE10")


def test_fetch_transactions_adds_since_clause_only_when_given(conn):
    dbx.fetch_transactions(TENANT)
    dbx.fetch_transactions(TENANT, since=NOW)
    (plain, plain_params), (windowed, windowed_params) = conn.statements
    assert "created_at >=" not in plain
    assert plain_params == [TENANT]
    assert "AND created_at >= %s ORDER BY created_at" in windowed
    assert windowed_params == [TENANT, NOW]


def test_notification_exists_filters_on_product_metadata(conn):
    conn.rows = [(1,)]
    assert dbx.notification_exists(TENANT, "low_stock", NOW, product_id="a") is True
    sql, params = conn.statements[0]
    assert "metadata @> %s" in sql
    assert params[:3] == [TENANT, "low_stock", NOW]
    assert params[3].obj == {"product_id": "a"}


def test_operator_names_prefers_full_name(conn):
    conn.rows = [
        {"id": "u1", "full_name": "Amina", "email": "amina@example.com"},
        {"id": "u2", "full_name": None, "email": "joe@example.com"},
    ]
    assert dbx.operator_names(["u1", "u2"]) == {"u1": "Amina", "u2": "joe@example.com"}
    assert dbx.operator_names([]) == {}
    assert len(conn.statements) == 1


def test_insert_notification_commits(conn):
    dbx.insert_notification(TENANT, "Low", "msg", "low_stock", {"product_id": "a"})
    assert conn.sql()[0].startswith("INSERT INTO notifications")
    assert conn.committed
