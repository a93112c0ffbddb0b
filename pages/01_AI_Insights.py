# pages/01_AI_Insights.py
# Sales forecast, reorder alerts, fraud check, clerk insights and recommendations, all backed by the chat model.

from datetime import datetime, timezone

import altair as alt
import pandas as pd
import streamlit as st

from retail_pos import settings as cfg
from retail_pos.adapters import db as dbx
from retail_pos.domain.errors import InsightError, ValidationError
from retail_pos.log import setup_logger
from retail_pos.services import insights_service
from retail_pos.ui import money, sidebar_context

st.set_page_config(page_title="AI Insights — Retail POS", layout="wide")
setup_logger()

if not cfg.AI_API_KEY or not cfg.PG_CONN:
    st.error("Missing secrets. Set AI_API_KEY and PG_CONN in .streamlit/secrets.toml.")
    st.stop()

ctx = sidebar_context()

st.title("AI Insights")
st.caption(f"Based on the last {cfg.FORECAST_WINDOW_DAYS} days of sales.")

pref_label = st.radio(
    "Model tie-breaker",
    options=["Cheapest then fastest", "Fastest then cheapest"],
    index=0,
    horizontal=True,
)
pref = "fastest" if "Fastest" in pref_label else "cheapest"

tab_forecast, tab_reorder, tab_fraud, tab_clerks, tab_recs = st.tabs(
    ["Sales forecast", "Reorder alerts", "Fraud check", "Clerk insights", "Recommendations"]
)

with tab_forecast:
    if st.button("Generate forecast", type="primary"):
        with st.spinner("Thinking..."):
            try:
                st.session_state["forecast"] = insights_service.sales_forecast(ctx, datetime.now(timezone.utc), pref)
            except (ValidationError, InsightError) as e:
                st.error(f"Forecast failed: {e}")

    result = st.session_state.get("forecast")
    if result is not None:
        fc = result.forecast
        if "forecast" in fc:
            st.info(fc["forecast"])
        else:
            c1, c2 = st.columns(2)
            c1.metric("Next 7 days (daily avg)", str(fc.get("nextWeekDaily", "—")))
            c2.metric("Next 30 days (total)", str(fc.get("nextMonthTotal", "—")))
            for key, title in (("trends", "Trends"), ("recommendations", "Recommendations")):
                value = fc.get(key)
                if value:
                    st.markdown(f"**{title}**")
                    if isinstance(value, list):
                        st.markdown("\n".join(f"- {v}" for v in value))
                    else:
                        st.write(value)

        s = result.stats
        st.caption(
            f"Daily mean {money(s['mean'])} • std {money(s['std'])} • {s['days']} trading days"
            + (f" • model `{result.winner['model']}`" if result.winner else "")
        )
        if not result.daily.empty:
            chart = alt.Chart(result.daily.assign(date=pd.to_datetime(result.daily["date"]))).mark_line(point=True).encode(
                x=alt.X("date:T", title="Day"),
                y=alt.Y("sales:Q", title=f"Sales ({cfg.CURRENCY})"),
                tooltip=["date:T", "sales:Q", "profit:Q", "transactions:Q"],
            ).properties(height=300, width="container")
            st.altair_chart(chart, use_container_width=True)
            c1, c2 = st.columns(2)
            c1.markdown("**Weekly**")
            c1.dataframe(result.weekly, use_container_width=True)
            c2.markdown("**Monthly**")
            c2.dataframe(result.monthly, use_container_width=True)

with tab_reorder:
    if st.button("Check stock"):
        with st.spinner("Checking sales velocity..."):
            try:
                st.session_state["reorder"] = insights_service.reorder_alerts(ctx, datetime.now(timezone.utc), pref)
            except (ValidationError, InsightError) as e:
                st.error(f"Reorder check failed: {e}")

    result = st.session_state.get("reorder")
    if result is not None:
        if not result.alerts:
            st.success("No products need reordering right now.")
        else:
            if result.source == "fallback":
                st.caption("Model reply could not be read; showing velocity-based advice.")
            st.dataframe(
                pd.DataFrame([a.as_payload() for a in result.alerts]),
                use_container_width=True,
            )
            with st.expander("Velocity details"):
                st.dataframe(
                    result.critical[["name", "stock", "low_stock_threshold", "total_sold", "daily_velocity", "days_until_stockout"]],
                    use_container_width=True,
                )

with tab_fraud:
    st.caption(f"Sales of the last {cfg.FRAUD_WINDOW_DAYS} days far from the average, sold at a loss or in bulk.")
    if st.button("Scan sales"):
        with st.spinner("Screening transactions..."):
            try:
                st.session_state["fraud"] = insights_service.fraud_alerts(ctx, datetime.now(timezone.utc), pref)
            except (ValidationError, InsightError) as e:
                st.error(f"Fraud check failed: {e}")

    result = st.session_state.get("fraud")
    if result is not None:
        if not result.alerts:
            st.success("No suspicious transactions found.")
        else:
            st.caption(
                f"{len(result.flagged)} flagged • average sale {money(result.mean)} • std {money(result.std)}"
            )
            st.dataframe(pd.DataFrame([a.as_payload() for a in result.alerts]), use_container_width=True)

with tab_clerks:
    if st.button("Analyze clerks"):
        with st.spinner("Analyzing sales by clerk..."):
            try:
                st.session_state["clerks"] = insights_service.clerk_insights(ctx, pref)
            except (ValidationError, InsightError) as e:
                st.error(f"Clerk insights failed: {e}")

    result = st.session_state.get("clerks")
    if result is not None:
        for key, value in result.insights.items():
            st.markdown(f"**{key}**")
            st.write(value)
        if result.top_clerks:
            st.dataframe(pd.DataFrame(result.top_clerks), use_container_width=True)

with tab_recs:
    try:
        products = dbx.list_products(ctx.tenant_id) if ctx.tenant_id else []
    except Exception as e:
        st.error(f"Failed to fetch products: {e}")
        products = []
    if products:
        chosen = st.selectbox("Product", products, format_func=lambda p: p.name)
        if st.button("Suggest products"):
            try:
                recs = insights_service.product_recommendations(ctx, chosen.id, pref)
            except (ValidationError, InsightError) as e:
                st.error(f"Recommendations failed: {e}")
            else:
                if not recs.products:
                    st.info("No other products in stock.")
                for p in recs.products:
                    st.write(f"**{p.name}** · {money(p.selling_price)}")
