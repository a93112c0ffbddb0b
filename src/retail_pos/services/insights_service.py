from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import httpx
import pandas as pd

from retail_pos import settings
from retail_pos.adapters import db as dbx
from retail_pos.adapters import llm
from retail_pos.domain import insights as ins
from retail_pos.domain import replies
from retail_pos.domain.errors import InsightError, ValidationError
from retail_pos.domain.models import CatalogItem, FraudAlert, ReorderAlert, SessionContext
from retail_pos.domain.prompts import (
    build_clerk_messages,
    build_forecast_messages,
    build_fraud_messages,
    build_recommendation_messages,
    build_reorder_messages,
)

logger = logging.getLogger(__name__)

NOT_ENOUGH_DATA = "Not enough data to generate forecast. Need at least 7 days of transaction history."
NO_CLERK_DATA = "Not enough transaction data to generate insights."


@dataclass
class ForecastResult:
    forecast: dict
    historical: pd.DataFrame
    daily: pd.DataFrame
    weekly: pd.DataFrame
    monthly: pd.DataFrame
    stats: dict
    winner: Optional[dict] = None
    trials: list[dict] = field(default_factory=list)

    def as_payload(self) -> dict:
        return {
            **self.forecast,
            "historicalData": self.historical.to_dict(orient="records"),
            "weekly": self.weekly.to_dict(orient="records"),
            "monthly": self.monthly.to_dict(orient="records"),
            "stats": self.stats,
        }


@dataclass
class ReorderResult:
    alerts: list[ReorderAlert]
    critical: pd.DataFrame
    source: str  # "model" | "fallback" | "none"
    winner: Optional[dict] = None

    def as_payload(self) -> dict:
        return {"alerts": [a.as_payload() for a in self.alerts]}


def _ask(ctx: SessionContext, kind: str, messages, scorer, pref: str):
    try:
        winner, trials = llm.run_models(messages, scorer, pref)
    except (httpx.HTTPError, KeyError, IndexError) as e:
        logger.error("%s: AI service error: %s", kind, e)
        raise InsightError("AI service error") from e
    _log_run(ctx, kind, winner, trials)
    return winner, trials


def _log_run(ctx: SessionContext, kind: str, winner: dict, trials: list[dict]) -> None:
    try:
        dbx.log_run({
            "tenant_id": ctx.tenant_id,
            "user_id": ctx.operator_id,
            "kind": kind,
            "chosen_model": winner["model"],
            "latency_ms": winner["latency_ms"],
            "cost_usd": winner["cost_usd"],
            "trials": trials,
        })
    except Exception as e:
        # run metadata is best effort, the insight is already computed
        logger.warning("could not log %s run: %s", kind, e)


def sales_forecast(ctx: SessionContext, now: datetime, pref: str = "cheapest") -> ForecastResult:
    if not ctx.tenant_id:
        raise ValidationError("User session not found")
    since = now - timedelta(days=settings.FORECAST_WINDOW_DAYS)
    df = ins.transactions_frame(dbx.fetch_transactions(ctx.tenant_id, since))
    daily = ins.daily_sales(df)
    weekly = ins.weekly_sales(daily)
    monthly = ins.monthly_sales(daily)
    stats = ins.daily_stats(daily)

    if daily.empty:
        return ForecastResult(
            forecast={"forecast": NOT_ENOUGH_DATA},
            historical=daily, daily=daily, weekly=weekly, monthly=monthly, stats=stats,
        )

    messages = build_forecast_messages(
        daily.to_dict(orient="records"), stats, settings.CURRENCY, settings.FORECAST_WINDOW_DAYS,
    )
    winner, trials = _ask(ctx, "forecast", messages, replies.forecast_score, pref)
    return ForecastResult(
        forecast=replies.parse_forecast(winner["text"]),
        historical=daily.tail(7).reset_index(drop=True),
        daily=daily,
        weekly=weekly,
        monthly=monthly,
        stats=stats,
        winner=winner,
        trials=trials,
    )


def reorder_alerts(ctx: SessionContext, now: datetime, pref: str = "cheapest") -> ReorderResult:
    if not ctx.tenant_id:
        raise ValidationError("User session not found")
    products = dbx.list_products(ctx.tenant_id)
    if not products:
        return ReorderResult(alerts=[], critical=pd.DataFrame(), source="none")

    since = now - timedelta(days=settings.FORECAST_WINDOW_DAYS)
    df = ins.transactions_frame(dbx.fetch_transactions(ctx.tenant_id, since))
    velocity = ins.product_velocity(products, df, settings.FORECAST_WINDOW_DAYS)
    critical = ins.critical_products(velocity, settings.STOCKOUT_HORIZON_DAYS)
    if critical.empty:
        return ReorderResult(alerts=[], critical=critical, source="none")

    messages = build_reorder_messages(critical.to_dict(orient="records"))
    winner, _ = _ask(ctx, "reorder", messages, replies.reorder_score, pref)
    alerts = replies.parse_reorder_alerts(winner["text"])
    if alerts is None:
        logger.info("reorder reply not parseable, using velocity fallback")
        return ReorderResult(alerts=ins.fallback_alerts(critical), critical=critical, source="fallback", winner=winner)
    return ReorderResult(alerts=alerts, critical=critical, source="model", winner=winner)


@dataclass
class FraudResult:
    alerts: list[FraudAlert]
    flagged: pd.DataFrame
    mean: float
    std: float
    source: str  # "model" | "fallback" | "none"
    winner: Optional[dict] = None

    def as_payload(self) -> dict:
        return {
            "suspiciousTransactions": [a.as_payload() for a in self.alerts],
            "totalFlagged": int(len(self.flagged)),
            "avgTransaction": self.mean,
        }


def fraud_alerts(ctx: SessionContext, now: datetime, pref: str = "cheapest") -> FraudResult:
    """Screen the last week's sale lines and have the model assess the flagged ones."""
    if not ctx.tenant_id:
        raise ValidationError("User session not found")
    since = now - timedelta(days=settings.FRAUD_WINDOW_DAYS)
    df = ins.transactions_frame(dbx.fetch_transactions(ctx.tenant_id, since))
    flagged, mean, std = ins.suspicious_sales(df)
    if flagged.empty:
        return FraudResult(alerts=[], flagged=flagged, mean=mean, std=std, source="none")

    messages = build_fraud_messages(flagged.to_dict(orient="records"), mean, std, settings.CURRENCY)
    winner, _ = _ask(ctx, "fraud", messages, replies.fraud_score, pref)
    alerts = replies.parse_fraud_alerts(winner["text"])
    if alerts is None:
        logger.info("fraud reply not parseable, flagging %d sales for review", len(flagged))
        return FraudResult(
            alerts=ins.fallback_fraud_alerts(flagged), flagged=flagged, mean=mean, std=std,
            source="fallback", winner=winner,
        )
    return FraudResult(alerts=alerts, flagged=flagged, mean=mean, std=std, source="model", winner=winner)


@dataclass
class ClerkInsights:
    insights: dict
    top_clerks: list[dict]
    total_transactions: int
    winner: Optional[dict] = None

    def as_payload(self) -> dict:
        return {**self.insights, "topClerks": self.top_clerks, "totalTransactions": self.total_transactions}


def clerk_insights(ctx: SessionContext, pref: str = "cheapest") -> ClerkInsights:
    if not ctx.tenant_id:
        raise ValidationError("User session not found")
    df = ins.transactions_frame(dbx.fetch_transactions(ctx.tenant_id))
    if df.empty:
        return ClerkInsights(insights={"insights": NO_CLERK_DATA}, top_clerks=[], total_transactions=0)

    clerk_ids = df["created_by"].dropna().astype(str).unique().tolist()
    clerks = ins.clerk_stats(df, dbx.operator_names(clerk_ids))
    messages = build_clerk_messages(clerks, len(df), df["created_at"].min(), df["created_at"].max())
    winner, _ = _ask(ctx, "clerks", messages, replies.clerk_score, pref)
    return ClerkInsights(
        insights=replies.parse_object(winner["text"], "insights"),
        top_clerks=clerks,
        total_transactions=int(len(df)),
        winner=winner,
    )


@dataclass
class Recommendations:
    products: list[CatalogItem]
    source: str  # "co_purchase" | "model" | "fallback" | "none"


def product_recommendations(
    ctx: SessionContext,
    product_id: str,
    pref: str = "cheapest",
    count: int = settings.RECOMMENDATION_COUNT,
) -> Recommendations:
    """
    Products to suggest alongside `product_id`.

    Items the same clerk sold close to it come first; when there are fewer
    than `count` of those the model picks from the in-stock list. If neither
    yields anything the first in-stock products are offered.
    """
    if not ctx.tenant_id:
        raise ValidationError("User session not found")
    current = next((p for p in dbx.list_products(ctx.tenant_id) if p.id == product_id), None)
    if current is None:
        raise ValidationError(f"Product {product_id} not found")
    candidates = [p for p in dbx.list_available_products(ctx.tenant_id) if p.id != product_id]
    if not candidates:
        return Recommendations(products=[], source="none")

    df = ins.transactions_frame(dbx.fetch_transactions(ctx.tenant_id))
    ranked = list(ins.co_purchases(df, product_id).index[:5])
    picked = sorted((p for p in candidates if p.id in ranked), key=lambda p: ranked.index(p.id))[:count]
    if len(picked) >= count:
        return Recommendations(products=picked, source="co_purchase")

    messages = build_recommendation_messages(current, candidates[:20], settings.CURRENCY, count)
    try:
        winner, _ = _ask(ctx, "recommendations", messages, replies.names_score, pref)
    except InsightError:
        logger.warning("recommendation model unavailable for %s, using sales history", product_id)
        winner = None
    if winner is not None:
        names = [n.lower() for n in replies.parse_product_names(winner["text"]) or []]
        suggested = [p for p in candidates if any(n in p.name.lower() for n in names)][:count]
        if suggested:
            return Recommendations(products=suggested, source="model")
    if picked:
        return Recommendations(products=picked, source="co_purchase")
    return Recommendations(products=candidates[:count], source="fallback")
