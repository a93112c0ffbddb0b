# app.py: Retail POS checkout
import streamlit as st
import pandas as pd

from retail_pos import settings as cfg
from retail_pos.domain.errors import CommitError, StockConflictError, ValidationError
from retail_pos.log import setup_logger
from retail_pos.services.checkout_service import CheckoutSession
from retail_pos.ui import forget_stale_prices, money, sidebar_context

# =========================
# App config / session
# =========================
st.set_page_config(page_title="🛒 Retail POS — Checkout", layout="wide")
setup_logger()

if not cfg.PG_CONN:
    st.error("Missing secrets. Set PG_CONN in .streamlit/secrets.toml.")
    st.stop()

ctx = sidebar_context()


def _session() -> CheckoutSession:
    # one checkout session per browser session, rebuilt when the operator/shop changes
    sess = st.session_state.get("checkout")
    if sess is None or sess.ctx != ctx:
        sess = CheckoutSession(ctx)
        if ctx.tenant_id:
            try:
                sess.refresh_catalog()
            except Exception as e:
                st.error(f"Failed to fetch products: {e}")
        st.session_state["checkout"] = sess
    return sess


sess = _session()


def _run(action, *args):
    """Run a cart/discount action and surface rejections as operator feedback."""
    try:
        return action(*args)
    except ValidationError as e:
        st.toast(str(e), icon="⚠️")
        return None


def _add(item_id: str):
    if _run(sess.add_item, item_id) is not None:
        st.session_state["pos_search"] = ""


def _reprice(item_id: str):
    _run(sess.set_line_price, item_id, st.session_state[f"price_{item_id}"])


# =========================
# UI
# =========================
st.title("Point of Sale")
st.caption("Fast checkout and sales processing")

left, right = st.columns([2, 1])

with left:
    st.subheader("Product search")
    term = st.text_input("Search products by name or barcode", key="pos_search")
    matches = sess.search(term)
    for item in matches[:20]:
        c1, c2 = st.columns([4, 1])
        c1.write(f"**{item.name}** · {money(item.selling_price)} · Stock: {item.stock}")
        c2.button("Add", key=f"add_{item.id}", on_click=_add, args=(item.id,))

    st.subheader(f"Cart ({len(sess.cart)} items)")
    forget_stale_prices(st.session_state, sess.cart)
    if len(sess.cart) == 0:
        st.info("Cart is empty. Search and add products to get started.")
    totals = sess.totals()
    amounts = {la.item_id: la for la in totals.lines}
    for line in sess.cart:
        la = amounts[line.item_id]
        c1, c2, c3, c4, c5, c6 = st.columns([3, 2, 1, 1, 2, 1])
        c1.write(line.item.name)
        c2.text_input(
            "Price", value=f"{line.price}", key=f"price_{line.item_id}", label_visibility="collapsed",
            on_change=_reprice, args=(line.item_id,),
        )
        c3.button("−", key=f"dec_{line.item_id}", on_click=_run, args=(sess.change_quantity, line.item_id, -1))
        c4.button("+", key=f"inc_{line.item_id}", on_click=_run, args=(sess.change_quantity, line.item_id, 1))
        c5.write(f"{line.quantity} × = {money(la.line_subtotal)}")
        if la.below_cost:
            c5.caption("⚠️ below cost")
        if c6.button("🗑", key=f"rm_{line.item_id}"):
            sess.remove_item(line.item_id)
            st.session_state.pop(f"price_{line.item_id}", None)
            st.rerun()

with right:
    st.subheader("Checkout")
    method = st.selectbox(
        "Payment method",
        cfg.PAYMENT_METHODS,
        index=cfg.PAYMENT_METHODS.index(sess.payment_method),
        format_func=lambda m: m.replace("_", " ").title(),
    )
    _run(sess.set_payment_method, method)

    with st.expander("Discount", expanded=sess.discount is not None):
        kind = st.radio("Type", ["None", "Percentage", "Fixed amount", "Promo code"], horizontal=True)
        if kind == "None":
            if sess.discount is not None:
                sess.clear_discount()
                st.rerun()
        elif kind == "Percentage":
            pct = st.text_input("Percent (0-100)", key="disc_pct")
            if st.button("Apply %"):
                _run(sess.set_percentage_discount, pct)
                st.rerun()
        elif kind == "Fixed amount":
            amt = st.text_input(f"Amount ({cfg.CURRENCY})", key="disc_fixed")
            if st.button("Apply amount"):
                _run(sess.set_fixed_discount, amt)
                st.rerun()
        else:
            code = st.text_input("Promo code", key="disc_code")
            if st.button("Validate code"):
                promo = _run(sess.apply_promo_code, code)
                if promo is not None:
                    st.toast(f"Promo {promo.code} applied", icon="✅")
                st.rerun()
            if sess.promo is not None:
                st.caption(f"Applied: `{sess.promo.code}` ({sess.promo.discount_type} {sess.promo.discount_value})")

    totals = sess.totals()
    st.divider()
    st.write(f"Items: **{totals.item_count}**")
    st.write(f"Subtotal: **{money(totals.subtotal)}**")
    if totals.discount:
        st.write(f"Discount: **−{money(totals.discount)}**")
    st.write(f"Profit: **{money(totals.net_profit)}**")
    if totals.net_profit < 0:
        st.warning("This sale is below cost.")
    st.markdown(f"### Total: {money(totals.total)}")

    if st.button("Complete Sale", type="primary", use_container_width=True, disabled=len(sess.cart) == 0):
        with st.spinner("Processing..."):
            try:
                result = sess.commit()
            except StockConflictError as e:
                st.error(f"{e}. Stock was refreshed, please review the cart.")
            except ValidationError as e:
                st.error(str(e))
            except CommitError as e:
                st.error(f"{e}. Nothing was saved, please retry.")
            else:
                forget_stale_prices(st.session_state, sess.cart)
                st.success(f"Sale completed! Total: {money(result.totals.total)}")
                st.dataframe(
                    pd.DataFrame([r.as_row() for r in result.records])[
                        ["product_name", "quantity", "unit_price", "discount_amount", "total_amount", "profit"]
                    ],
                    use_container_width=True,
                )

    if len(sess.cart) > 0 and st.button("Clear Cart", use_container_width=True):
        sess.clear_cart()
        st.rerun()

    st.divider()
    st.caption(f"Clerk: {ctx.operator_id or '—'} • Payment: {sess.payment_method.replace('_', ' ').upper()}")
