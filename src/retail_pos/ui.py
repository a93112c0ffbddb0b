from __future__ import annotations
import streamlit as st

from retail_pos import settings
from retail_pos.adapters import db as dbx
from retail_pos.domain.models import SessionContext
from retail_pos.services.checkout_service import format_money


@st.cache_data(ttl=300, show_spinner=False)
def _tenant_for(operator_id: str) -> str | None:
    return dbx.resolve_tenant(operator_id)


def sidebar_context() -> SessionContext:
    """Operator + tenant for this browser session, shared by every page."""
    with st.sidebar:
        st.subheader("Session")
        operator_id = st.text_input("Operator ID", value=st.session_state.get("operator_id", settings.OPERATOR_ID))
        st.session_state["operator_id"] = operator_id
        tenant_id = None
        if operator_id:
            try:
                tenant_id = _tenant_for(operator_id)
            except Exception as e:
                st.error(f"Could not load profile: {e}")
        if tenant_id:
            st.caption(f"Shop: `{tenant_id}`")
        else:
            st.warning("No shop found for this operator.")
    return SessionContext(tenant_id=tenant_id, operator_id=operator_id or None)


def money(amount) -> str:
    return format_money(amount, settings.CURRENCY)


def forget_stale_prices(state, cart) -> list[str]:
    """Drop `price_<id>` widget values for items no longer in the cart so a re-added item shows its own price."""
    stale = [k for k in list(state.keys()) if k.startswith("price_") and k[len("price_"):] not in cart]
    for key in stale:
        del state[key]
    return stale
