from __future__ import annotations
import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

import pandas as pd

from retail_pos import settings
from retail_pos.domain.models import CatalogItem, FraudAlert, ReorderAlert

TX_COLUMNS = [
    "id", "created_at", "product_id", "product_name", "quantity", "total_amount", "profit",
    "payment_method", "created_by",
]
DAILY_COLUMNS = ["date", "sales", "profit", "transactions"]


@dataclass(frozen=True)
class PeriodStats:
    sales: float
    profit: float
    transactions: int
    items: int = 0


def transactions_frame(rows: Iterable[dict]) -> pd.DataFrame:
    """Sale rows from the store -> typed frame, created_at in the shop timezone."""
    df = pd.DataFrame(list(rows))
    for c in TX_COLUMNS:
        if c not in df.columns:
            df[c] = pd.NA
    df = df[TX_COLUMNS].copy()
    df["created_at"] = pd.to_datetime(df["created_at"], utc=True).dt.tz_convert(settings.TZ)
    if df.empty:
        return df
    for c in ("total_amount", "profit"):
        df[c] = df[c].fillna(0).astype(float)
    df["quantity"] = df["quantity"].fillna(0).astype(int)
    return df


def local_time(ts: datetime) -> pd.Timestamp:
    t = pd.Timestamp(ts)
    if t.tzinfo is None:
        t = t.tz_localize("UTC")
    return t.tz_convert(settings.TZ)


def daily_sales(df: pd.DataFrame) -> pd.DataFrame:
    """One row per local day with sales: date (YYYY-MM-DD), sales, profit, transactions."""
    if df.empty:
        return pd.DataFrame(columns=DAILY_COLUMNS)
    day = df["created_at"].dt.strftime("%Y-%m-%d").rename("date")
    out = (
        df.groupby(day)
        .agg(sales=("total_amount", "sum"), profit=("profit", "sum"), transactions=("total_amount", "size"))
        .reset_index()
        .sort_values("date")
        .reset_index(drop=True)
    )
    return out[DAILY_COLUMNS]


def _rollup(daily: pd.DataFrame, freq: str) -> pd.DataFrame:
    if daily.empty:
        return pd.DataFrame(columns=["period", "sales", "profit", "transactions"])
    period = pd.to_datetime(daily["date"]).dt.to_period(freq).astype(str).rename("period")
    return (
        daily.groupby(period)[["sales", "profit", "transactions"]]
        .sum()
        .reset_index()
        .sort_values("period")
        .reset_index(drop=True)
    )


def weekly_sales(daily: pd.DataFrame) -> pd.DataFrame:
    return _rollup(daily, "W")


def monthly_sales(daily: pd.DataFrame) -> pd.DataFrame:
    return _rollup(daily, "M")


def daily_stats(daily: pd.DataFrame) -> dict:
    """Mean and sample standard deviation of daily sales over days that had sales."""
    if daily.empty:
        return {"days": 0, "total": 0.0, "mean": 0.0, "std": 0.0}
    sales = daily["sales"].astype(float)
    std = float(sales.std(ddof=1)) if len(sales) > 1 else 0.0
    return {
        "days": int(len(sales)),
        "total": round(float(sales.sum()), 2),
        "mean": round(float(sales.mean()), 2),
        "std": round(std, 2),
    }


def product_velocity(
    products: Iterable[CatalogItem],
    df: pd.DataFrame,
    window_days: int = settings.FORECAST_WINDOW_DAYS,
) -> pd.DataFrame:
    """
    Per product: total units sold in the window, units per day and days until
    stock runs out at that pace (NO_SALES_DAYS when nothing sold).
    """
    prod = pd.DataFrame(
        [
            {
                "id": p.id,
                "name": p.name,
                "stock": p.stock,
                "low_stock_threshold": p.low_stock_threshold,
                "buying_price": float(p.buying_price),
            }
            for p in products
        ],
        columns=["id", "name", "stock", "low_stock_threshold", "buying_price"],
    )
    if df.empty:
        sold = pd.Series(dtype="int64")
    else:
        sold = df.groupby(df["product_id"].astype(str))["quantity"].sum()
    prod["total_sold"] = prod["id"].map(sold).fillna(0).astype(int)
    prod["daily_velocity"] = prod["total_sold"] / window_days
    prod["days_until_stockout"] = [
        stock / v if v > 0 else float(settings.NO_SALES_DAYS)
        for stock, v in zip(prod["stock"], prod["daily_velocity"])
    ]
    return prod


def critical_products(velocity: pd.DataFrame, horizon_days: int = settings.STOCKOUT_HORIZON_DAYS) -> pd.DataFrame:
    mask = (velocity["days_until_stockout"] < horizon_days) | (velocity["stock"] <= velocity["low_stock_threshold"])
    return velocity[mask].reset_index(drop=True)


def fallback_alerts(
    critical: pd.DataFrame,
    horizon_days: int = settings.STOCKOUT_HORIZON_DAYS,
    critical_days: int = settings.CRITICAL_DAYS,
) -> list[ReorderAlert]:
    """Deterministic reorder advice used when the model reply cannot be parsed."""
    alerts = []
    for row in critical.itertuples(index=False):
        days = float(row.days_until_stockout)
        alerts.append(ReorderAlert(
            product_name=row.name,
            reorder_quantity=int(math.ceil(row.daily_velocity * horizon_days)),
            urgency="Critical" if days < critical_days else "High",
            reason=f"{days:.1f} days until stockout",
        ))
    return alerts


def _stats(df: pd.DataFrame) -> PeriodStats:
    return PeriodStats(
        sales=round(float(df["total_amount"].sum()), 2),
        profit=round(float(df["profit"].sum()), 2),
        transactions=int(len(df)),
        items=int(df["quantity"].sum()),
    )


def period_stats(df: pd.DataFrame, now: datetime) -> dict[str, PeriodStats]:
    """Sales/profit/count for today, the last 7 days, last month and last year."""
    local_now = local_time(now)
    starts = {
        "today": local_now.normalize(),
        "week": local_now - pd.Timedelta(days=7),
        "month": local_now - pd.DateOffset(months=1),
        "year": local_now - pd.DateOffset(years=1),
    }
    return {name: _stats(df[df["created_at"] >= start]) for name, start in starts.items()}


def product_ranking(df: pd.DataFrame) -> pd.DataFrame:
    cols = ["product_name", "total_quantity", "total_sales", "total_profit"]
    if df.empty:
        return pd.DataFrame(columns=cols)
    out = (
        df.groupby("product_name")
        .agg(total_quantity=("quantity", "sum"), total_sales=("total_amount", "sum"), total_profit=("profit", "sum"))
        .reset_index()
        .sort_values("total_sales", ascending=False)
        .reset_index(drop=True)
    )
    return out[cols]


def low_stock(products: Iterable[CatalogItem], limit: int | None = None) -> list[CatalogItem]:
    low = sorted((p for p in products if p.stock <= p.low_stock_threshold), key=lambda p: p.stock)
    return low[:limit] if limit else low


# ---------- fraud screening ----------

def suspicious_sales(
    df: pd.DataFrame,
    sigma: float = settings.FRAUD_SIGMA,
    max_quantity: int = settings.FRAUD_MAX_QUANTITY,
    limit: int = settings.FRAUD_MAX_FLAGGED,
) -> tuple[pd.DataFrame, float, float]:
    """
    Sale lines worth a second look, newest first, with the mean and
    population standard deviation of line amounts they were judged against.

    A line is flagged when its amount is more than `sigma` deviations from the
    mean, its profit is negative, or its quantity is above `max_quantity`.
    """
    if df.empty:
        return df, 0.0, 0.0
    amounts = df["total_amount"].astype(float)
    mean = float(amounts.mean())
    std = float(amounts.std(ddof=0))
    mask = ((amounts - mean).abs() > sigma * std) | (df["profit"] < 0) | (df["quantity"] > max_quantity)
    flagged = (
        df[mask]
        .sort_values("created_at", ascending=False)
        .head(limit)
        .reset_index(drop=True)
    )
    return flagged, round(mean, 2), round(std, 2)


def short_id(value) -> str:
    return str(value)[:8]


def fallback_fraud_alerts(flagged: pd.DataFrame) -> list[FraudAlert]:
    return [
        FraudAlert(
            transaction_id=short_id(row.id),
            risk_level="Medium",
            reason="Statistical anomaly detected",
            action="Review transaction details",
        )
        for row in flagged.itertuples(index=False)
    ]


# ---------- recommendations ----------

def co_purchases(
    df: pd.DataFrame,
    product_id: str,
    hours: int = settings.CO_PURCHASE_HOURS,
) -> pd.Series:
    """
    How often each other product was sold by the same clerk within `hours`
    of a sale of `product_id`. Most frequent first.
    """
    if df.empty:
        return pd.Series(dtype="int64")
    ids = df["product_id"].astype(str)
    anchors = df[ids == str(product_id)]
    others = df[ids != str(product_id)]
    window = pd.Timedelta(hours=hours)
    sellers = others["created_by"].astype(str)
    counts: Counter = Counter()
    for sale in anchors.itertuples(index=False):
        if pd.isna(sale.created_by):
            continue
        near = others[
            (sellers == str(sale.created_by))
            & ((others["created_at"] - sale.created_at).abs() <= window)
        ]
        counts.update(near["product_id"].astype(str))
    return pd.Series(dict(counts.most_common()), dtype="int64")


# ---------- clerk performance ----------

def _most_common(values: pd.Series) -> str:
    counts = values.dropna().astype(str).value_counts()
    return str(counts.index[0]) if len(counts) else "None"


def clerk_stats(df: pd.DataFrame, names: dict[str, str] | None = None, top: int = 5) -> list[dict]:
    """Per clerk: sales, profit, average sale and favourite payment method / product. Best sellers first."""
    if df.empty:
        return []
    names = names or {}
    clerks = []
    for clerk_id, g in df.groupby(df["created_by"].astype(str)):
        sales = float(g["total_amount"].sum())
        clerks.append({
            "name": names.get(clerk_id) or "Unknown",
            "transactions": int(len(g)),
            "totalSales": round(sales, 2),
            "totalProfit": round(float(g["profit"].sum()), 2),
            "avgTransactionValue": round(sales / len(g), 2),
            "topPaymentMethod": _most_common(g["payment_method"]),
            "topProduct": _most_common(g["product_name"]),
        })
    clerks.sort(key=lambda c: c["totalSales"], reverse=True)
    return clerks[:top]


# ---------- notifications ----------

def stale_products(products: Iterable[CatalogItem], df: pd.DataFrame) -> list[CatalogItem]:
    """In-stock products with no sale in `df`."""
    sold = set(df["product_id"].astype(str)) if not df.empty else set()
    return [p for p in products if p.stock > 0 and p.id not in sold]


def fast_sellers(df: pd.DataFrame, min_units: int = settings.FAST_SELLING_UNITS) -> list[tuple[str, str, int]]:
    """(product_id, product_name, units) for products that sold at least `min_units` in `df`."""
    if df.empty:
        return []
    units = (
        df.groupby(df["product_id"].astype(str))
        .agg(product_name=("product_name", "first"), units=("quantity", "sum"))
        .sort_values("units", ascending=False, kind="stable")
    )
    return [
        (pid, row["product_name"], int(row["units"]))
        for pid, row in units.iterrows()
        if row["units"] >= min_units
    ]
