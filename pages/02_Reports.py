# pages/02_Reports.py
# Period sales/profit, best sellers and low stock.

from datetime import datetime, timezone

import streamlit as st

from retail_pos import settings as cfg
from retail_pos.domain.errors import ValidationError
from retail_pos.log import setup_logger
from retail_pos.services import report_service
from retail_pos.ui import money, sidebar_context

st.set_page_config(page_title="Reports — Retail POS", layout="wide")
setup_logger()

if not cfg.PG_CONN:
    st.error("Missing secrets. Set PG_CONN in .streamlit/secrets.toml.")
    st.stop()

ctx = sidebar_context()

st.title("Sales Reports")

try:
    report = report_service.sales_report(ctx, datetime.now(timezone.utc))
except ValidationError as e:
    st.error(str(e))
    st.stop()

labels = {"today": "Today", "week": "Last 7 days", "month": "Last month", "year": "Last year"}
cols = st.columns(len(labels))
for col, (key, label) in zip(cols, labels.items()):
    stats = report.periods[key]
    col.metric(label, money(stats.sales), help=f"{stats.transactions} transactions")
    col.caption(f"Profit {money(stats.profit)}")

st.subheader("Products by sales")
if report.products.empty:
    st.info("No sales recorded yet.")
else:
    st.dataframe(report.products, use_container_width=True)
    st.bar_chart(report.products.head(10).set_index("product_name")["total_sales"])

st.subheader("Low stock")
if not report.low_stock:
    st.success("All products are above their stock threshold.")
for p in report.low_stock:
    st.write(f"**{p.name}** — {p.stock} / {p.low_stock_threshold} left")
