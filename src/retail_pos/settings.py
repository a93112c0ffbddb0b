import os
from decimal import Decimal

import streamlit as st
from streamlit.errors import StreamlitAPIException

# Streamlit page config should be set by the app entrypoint, not here.


def _secret(name: str, default: str = "") -> str:
    try:
        return st.secrets.get(name, os.getenv(name, default))
    except (FileNotFoundError, StreamlitAPIException):
        # no secrets.toml (tests, batch scripts)
        return os.getenv(name, default)


# Secrets / env
AI_API_KEY: str = _secret("AI_API_KEY")
PG_CONN: str = _secret("PG_CONN")

AI_CHAT_URL: str = _secret("AI_CHAT_URL", "https://openrouter.ai/api/v1/chat/completions")

# Versions (log with each insight run for reproducibility)
PROMPT_VERSION = "v1.0"

# Chat models with prices per 1k tokens (USD); every configured model is tried
MODELS = [
    {"id": "google/gemini-2.5-flash", "in": 0.0030, "out": 0.0250},
]

AI_HEADERS = {
    "Authorization": f"Bearer {AI_API_KEY}",
    "Content-Type": "application/json",
    "HTTP-Referer": "http://localhost:8501",  # change if deployed
    "X-Title": "Retail POS",
}

# Store knobs
STATEMENT_TIMEOUT_MS = 5000
TZ                   = _secret("SHOP_TZ", "Africa/Kampala")

# Money
CURRENCY      = _secret("CURRENCY", "UGX")
MONEY_QUANTUM = Decimal("0.01")

PAYMENT_METHODS = ("cash", "mobile_money", "card")
DEFAULT_PAYMENT_METHOD = "cash"

# Insights
FORECAST_WINDOW_DAYS  = 30
STOCKOUT_HORIZON_DAYS = 14
CRITICAL_DAYS         = 7
NO_SALES_DAYS         = 999
DEFAULT_LOW_STOCK_THRESHOLD = 5

# Fraud screening over recent sales
FRAUD_WINDOW_DAYS   = 7
FRAUD_SIGMA         = 2.5
FRAUD_MAX_QUANTITY  = 20
FRAUD_MAX_FLAGGED   = 10

# Recommendations: sales by the same clerk within this many hours count as bought together
CO_PURCHASE_HOURS    = 1
RECOMMENDATION_COUNT = 3

# Smart notifications
STALE_PRODUCT_DAYS = 30
FAST_SELLING_UNITS = 10
FAST_SELLING_DAYS  = 7
PROFIT_TARGET      = Decimal(str(_secret("PROFIT_TARGET", "10000")))

LOG_DIR = _secret("LOG_DIR", "data/logs")

# Operator shown in the sidebar until a real sign-in is wired in
OPERATOR_ID = _secret("OPERATOR_ID", "")
