from dataclasses import replace
from decimal import Decimal

import pytest

from conftest import NOW, TENANT, make_item, make_promo
from retail_pos import settings
from retail_pos.domain.errors import (
    CommitError,
    PromoExpired,
    PromoLimitReached,
    PromoNotFound,
    StockConflictError,
    StockLimitError,
    ValidationError,
)
from retail_pos.domain.models import PercentageDiscount, PromoDiscount, SessionContext
from retail_pos.services.checkout_service import CheckoutSession, format_money


@pytest.fixture
def session(store, ctx):
    store.add(
        make_item("a", 1000, 600, 5, name="Bread"),
        make_item("b", 500, 200, 10, name="Milk"),
        make_item("c", 100, 50, 0, name="Sugar"),
    )
    s = CheckoutSession(ctx, clock=lambda: NOW)
    s.refresh_catalog()
    return s


def stock_of(store, item_id):
    return store.products[item_id].stock


def test_catalog_holds_only_items_in_stock(session):
    assert [i.id for i in session.catalog] == ["a", "b"]


def test_search_by_name_and_barcode(store, session):
    store.add(replace(store.products["b"], barcode="600123"))
    session.refresh_catalog()
    assert [i.id for i in session.search("brE")] == ["a"]
    assert [i.id for i in session.search("600123")] == ["b"]
    assert session.search("6001") == []
    assert session.search("  ") == []


def test_add_unknown_item(session):
    with pytest.raises(ValidationError):
        session.add_item("c")


def test_commit_without_discount(store, session):
    session.add_item("a")
    session.add_item("a")

    result = session.commit()

    assert result.totals.total == Decimal("2000")
    assert result.totals.net_profit == Decimal("800")
    assert len(store.sales) == 1
    rec = store.sales[0]
    assert (rec.tenant_id, rec.product_id, rec.quantity) == (TENANT, "a", 2)
    assert rec.unit_price == Decimal("1000")
    assert rec.total_amount == Decimal("2000")
    assert rec.profit == Decimal("800")
    assert rec.created_by == "clerk-1"
    assert rec.created_at == NOW
    assert rec.discount_type is None and rec.discount_amount is None
    assert stock_of(store, "a") == 3
    assert len(session.cart) == 0
    assert session.discount is None


def test_commit_with_percentage_discount(store, session):
    session.add_item("a")
    session.add_item("a")
    session.set_percentage_discount("10")
    session.set_payment_method("mobile_money")

    result = session.commit()

    assert result.totals.discount == Decimal("200")
    assert result.totals.total == Decimal("1800")
    rec = store.sales[0]
    assert rec.discount_type == "percentage"
    assert rec.discount_value == Decimal("10")
    assert rec.discount_amount == Decimal("200")
    assert rec.total_amount == Decimal("1800")
    assert rec.profit == Decimal("600")
    assert rec.payment_method == "mobile_money"
    assert session.payment_method == settings.DEFAULT_PAYMENT_METHOD


def test_multi_line_records_add_up_to_totals(store, session):
    session.add_item("a")
    session.add_item("b")
    session.set_fixed_discount("333")

    result = session.commit()

    assert sum(r.discount_amount for r in store.sales) == result.totals.discount
    assert sum(r.total_amount for r in store.sales) == result.totals.total
    assert sum(r.profit for r in store.sales) == result.totals.net_profit


def test_commit_with_promo_bumps_usage_once(store, session):
    store.promos["SAVE10"] = make_promo("SAVE10", "percentage", 10, usage_limit=5)
    session.add_item("a")
    session.add_item("b")
    session.apply_promo_code(" save10 ")

    result = session.commit()

    assert result.totals.discount == Decimal("150")
    assert store.promos["SAVE10"].times_used == 1
    assert {r.promo_code for r in store.sales} == {"SAVE10"}
    assert {r.discount_type for r in store.sales} == {"percentage"}
    assert {r.discount_value for r in store.sales} == {Decimal("10")}
    assert session.promo is None


def test_fixed_promo_records_its_own_kind(store, session):
    store.promos["FLAT"] = make_promo("FLAT", "fixed", 250)
    session.add_item("a")
    session.apply_promo_code("flat")

    session.commit()

    rec = store.sales[0]
    assert (rec.discount_type, rec.discount_value, rec.promo_code) == ("fixed", Decimal("250"), "FLAT")
    assert rec.discount_amount == Decimal("250")


def test_sold_out_item_leaves_catalog_after_commit(store, session):
    for _ in range(5):
        session.add_item("a")
    session.commit()
    assert stock_of(store, "a") == 0
    assert [i.id for i in session.catalog] == ["b"]


def test_empty_cart_cannot_commit(store, session):
    with pytest.raises(ValidationError, match="add items"):
        session.commit()
    assert store.sales == []


def test_missing_operator_cannot_commit(store):
    store.add(make_item("a", 1000, 600, 5))
    s = CheckoutSession(SessionContext(tenant_id=TENANT, operator_id=None), clock=lambda: NOW)
    s.refresh_catalog()
    s.add_item("a")
    with pytest.raises(ValidationError, match="session"):
        s.commit()
    assert store.sales == []
    assert stock_of(store, "a") == 5


def test_stale_stock_rolls_back_and_clamps_cart(store, session):
    session.add_item("b")
    session.add_item("a")
    session.add_item("a")
    session.add_item("a")
    # another till sold most of the bread meanwhile
    store.products["a"] = replace(store.products["a"], stock=1)

    with pytest.raises(StockConflictError) as exc:
        session.commit()

    assert exc.value.product_id == "a"
    assert store.sales == []
    assert stock_of(store, "a") == 1
    assert stock_of(store, "b") == 10
    assert session.cart.get("a").quantity == 1
    assert session.cart.get("b").quantity == 1


def test_stock_conflict_is_a_stock_limit_error():
    assert issubclass(StockConflictError, StockLimitError)


def test_failed_insert_writes_nothing(store, session):
    store.promos["SAVE10"] = make_promo()
    session.add_item("a")
    session.add_item("b")
    session.apply_promo_code("SAVE10")
    store.fail_insert_at = 1

    with pytest.raises(CommitError):
        session.commit()

    assert store.sales == []
    assert stock_of(store, "a") == 5
    assert store.promos["SAVE10"].times_used == 0
    assert len(session.cart) == 2


def test_promo_used_up_between_apply_and_commit(store, session):
    store.promos["ONCE"] = make_promo("ONCE", "fixed", 100, usage_limit=1)
    session.add_item("a")
    session.apply_promo_code("once")
    store.promos["ONCE"] = replace(store.promos["ONCE"], times_used=1)

    with pytest.raises(PromoLimitReached):
        session.commit()

    assert store.sales == []
    assert session.promo is None
    assert session.totals().discount == 0


def test_unknown_promo_applies_no_discount(store, session):
    session.add_item("a")
    with pytest.raises(PromoNotFound):
        session.apply_promo_code("NOPE")
    assert session.discount == PromoDiscount("NOPE")
    assert session.totals().discount == 0


def test_expired_promo(store, session):
    store.promos["OLD"] = make_promo("OLD", valid_until=NOW.replace(month=9))
    session.add_item("a")
    with pytest.raises(PromoExpired):
        session.apply_promo_code("OLD")
    assert session.promo is None


def test_switching_kind_drops_validated_promo(store, session):
    store.promos["SAVE10"] = make_promo()
    session.add_item("a")
    session.apply_promo_code("SAVE10")
    session.set_percentage_discount("5")
    assert session.promo is None
    assert session.discount == PercentageDiscount(Decimal("5"))
    assert session.totals().discount == Decimal("50")


def test_invalid_discount_input_keeps_previous(session):
    session.add_item("a")
    session.set_percentage_discount("10")
    for bad in ("150", "0", "abc"):
        with pytest.raises(ValidationError):
            session.set_percentage_discount(bad)
    with pytest.raises(ValidationError):
        session.set_fixed_discount("-20")
    assert session.totals().discount == Decimal("100")


def test_clear_discount(session):
    session.add_item("a")
    session.set_fixed_discount("1,000")
    assert session.totals().total == 0
    session.clear_discount()
    assert session.totals().total == Decimal("1000")


def test_price_override_flows_into_record(store, session):
    session.add_item("a")
    session.set_line_price("a", "550")
    assert session.totals().loss_lines == ["a"]
    session.commit()
    assert store.sales[0].unit_price == Decimal("550")
    assert store.sales[0].profit == Decimal("-50")


def test_bad_price_and_payment_input(session):
    session.add_item("a")
    with pytest.raises(ValidationError):
        session.set_line_price("a", "abc")
    with pytest.raises(ValidationError):
        session.set_payment_method("bitcoin")
    assert session.cart.get("a").price == Decimal("1000")


def test_format_money():
    assert format_money(Decimal("1234.5"), "UGX") == "UGX 1,234.50"
