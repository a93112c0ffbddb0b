from __future__ import annotations
import json
import math
import re

from retail_pos.domain.models import FraudAlert, ReorderAlert

FORECAST_KEYS = ("nextWeekDaily", "nextMonthTotal", "trends", "recommendations")
URGENCIES = ("Critical", "High", "Medium")
CLERK_KEYS = ("topClerk", "paymentTrends", "purchasePatterns", "recommendations")
RISK_LEVELS = ("High", "Medium", "Low")


def extract_json(text: str, opener: str = "{"):
    """
    Pull the first JSON value out of a model reply.

    Prefers a ```json fenced block, then the outermost {...} or [...] span.
    Returns None when nothing parses.
    """
    if not text:
        return None
    closer = "}" if opener == "{" else "]"
    candidates = []
    m = re.search(r"```json\s*(.*?)\s*```", text, flags=re.S | re.I)
    if m:
        candidates.append(m.group(1))
    m2 = re.search(re.escape(opener) + r".*" + re.escape(closer), text, flags=re.S)
    if m2:
        candidates.append(m2.group(0))
    for c in candidates:
        try:
            return json.loads(c)
        except json.JSONDecodeError:
            continue
    return None


def parse_object(text: str, fallback_key: str) -> dict:
    """JSON object from the reply, else the raw text under `fallback_key`."""
    data = extract_json(text, "{")
    if isinstance(data, dict):
        return data
    return {fallback_key: text}


def parse_forecast(text: str) -> dict:
    return parse_object(text, "forecast")


def _to_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(math.ceil(value)) if value >= 0 else None
    if isinstance(value, str):
        m = re.search(r"\d+(?:\.\d+)?", value)
        return int(math.ceil(float(m.group(0)))) if m else None
    return None


def _urgency(value) -> str:
    s = str(value or "").strip().capitalize()
    return s if s in URGENCIES else "Medium"


def _alert_list(text: str, keys=("alerts", "recommendations")) -> list | None:
    """Bare JSON array, or the array under one of `keys` of a wrapping object."""
    data = extract_json(text, "[")
    if isinstance(data, list):
        return data
    wrapped = extract_json(text, "{")
    if isinstance(wrapped, dict):
        for key in keys:
            if isinstance(wrapped.get(key), list):
                return wrapped[key]
    return None


def parse_reorder_alerts(text: str) -> list[ReorderAlert] | None:
    """
    Model reply -> alerts. None when the reply holds no usable JSON array, so
    the caller can fall back to the velocity-based advice.
    """
    data = _alert_list(text)
    if data is None:
        return None
    alerts = []
    for entry in data:
        if not isinstance(entry, dict) or not entry.get("productName"):
            continue
        qty = _to_int(entry.get("reorderQuantity"))
        if qty is None:
            continue
        alerts.append(ReorderAlert(
            product_name=str(entry["productName"]),
            reorder_quantity=qty,
            urgency=_urgency(entry.get("urgency")),
            reason=str(entry.get("reason") or ""),
        ))
    return alerts or None


def _object_score(answer: str, keys) -> int:
    """
    +1: a JSON object can be parsed
    +1: it carries at least one expected key
    +1: it carries all expected keys
    """
    data = extract_json(answer, "{")
    if not isinstance(data, dict):
        return 0
    present = sum(1 for k in keys if k in data)
    return 1 + int(present > 0) + int(present == len(keys))


def forecast_score(answer: str) -> int:
    return _object_score(answer, FORECAST_KEYS)


def clerk_score(answer: str) -> int:
    return _object_score(answer, CLERK_KEYS)


def reorder_score(answer: str) -> int:
    data = _alert_list(answer)
    if data is None:
        return 0
    alerts = parse_reorder_alerts(answer) or []
    return 1 + int(bool(alerts)) + int(bool(alerts) and len(alerts) == len(data))


def parse_fraud_alerts(text: str) -> list[FraudAlert] | None:
    data = _alert_list(text, keys=("suspiciousTransactions", "transactions", "alerts"))
    if data is None:
        return None
    alerts = []
    for entry in data:
        if not isinstance(entry, dict) or not entry.get("transactionId"):
            continue
        risk = str(entry.get("riskLevel") or "").strip().capitalize()
        alerts.append(FraudAlert(
            transaction_id=str(entry["transactionId"]),
            risk_level=risk if risk in RISK_LEVELS else "Medium",
            reason=str(entry.get("reason") or ""),
            action=str(entry.get("action") or ""),
        ))
    return alerts or None


def fraud_score(answer: str) -> int:
    data = _alert_list(answer, keys=("suspiciousTransactions", "transactions", "alerts"))
    if data is None:
        return 0
    alerts = parse_fraud_alerts(answer) or []
    return 1 + int(bool(alerts)) + int(bool(alerts) and len(alerts) == len(data))


def parse_product_names(text: str) -> list[str] | None:
    data = _alert_list(text, keys=("products", "recommendations"))
    if data is None:
        return None
    names = [str(n).strip() for n in data if isinstance(n, str) and n.strip()]
    return names or None


def names_score(answer: str) -> int:
    data = _alert_list(answer, keys=("products", "recommendations"))
    if data is None:
        return 0
    names = parse_product_names(answer) or []
    return 1 + int(bool(names)) + int(bool(names) and len(names) == len(data))
