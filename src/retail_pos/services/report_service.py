from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

import pandas as pd

from retail_pos import settings
from retail_pos.adapters import db as dbx
from retail_pos.domain import insights as ins
from retail_pos.domain.errors import ValidationError
from retail_pos.domain.models import CatalogItem, SessionContext

logger = logging.getLogger(__name__)


@dataclass
class SalesReport:
    periods: dict[str, ins.PeriodStats]
    products: pd.DataFrame
    low_stock: list[CatalogItem]


def sales_report(ctx: SessionContext, now: datetime) -> SalesReport:
    if not ctx.tenant_id:
        raise ValidationError("User session not found")
    # year is the widest period shown
    df = ins.transactions_frame(dbx.fetch_transactions(ctx.tenant_id, now - timedelta(days=366)))
    return SalesReport(
        periods=ins.period_stats(df, now),
        products=ins.product_ranking(df),
        low_stock=ins.low_stock(dbx.list_products(ctx.tenant_id)),
    )


def summary_message(stats: ins.PeriodStats, currency: str = settings.CURRENCY) -> str:
    return (
        f"Today's performance: {stats.transactions} transactions, {stats.items} items sold. "
        f"Revenue: {currency} {stats.sales:,.2f}, Profit: {currency} {stats.profit:,.2f}"
    )


def daily_summary(tenant_id: str, now: datetime) -> ins.PeriodStats | None:
    """Write today's sales summary notification for one tenant; None when nothing sold."""
    df = ins.transactions_frame(dbx.fetch_transactions(tenant_id, now - timedelta(days=1)))
    today = ins.period_stats(df, now)["today"]
    if today.transactions == 0:
        return None
    dbx.insert_notification(
        tenant_id,
        title="Daily Sales Summary",
        message=summary_message(today),
        type_="sales_summary",
        metadata={
            "date": ins.local_time(now).strftime("%Y-%m-%d"),
            "transaction_count": today.transactions,
            "total_items": today.items,
            "total_sales": today.sales,
            "total_profit": today.profit,
        },
    )
    return today


def run_daily_summaries(now: datetime) -> dict[str, ins.PeriodStats | None]:
    results = {}
    for tenant_id in dbx.list_tenant_ids():
        try:
            results[tenant_id] = daily_summary(tenant_id, now)
        except Exception as e:
            # one tenant failing must not stop the others
            logger.error("daily summary failed for tenant %s: %s", tenant_id, e)
            continue
        if results[tenant_id] is not None:
            logger.info("created sales summary for tenant %s", tenant_id)
    return results


def _notify_once(tenant_id: str, type_: str, since: datetime, title: str, message: str, metadata: dict) -> bool:
    if dbx.notification_exists(tenant_id, type_, since, metadata.get("product_id")):
        return False
    dbx.insert_notification(tenant_id, title=title, message=message, type_=type_, metadata=metadata)
    return True


def smart_notifications(tenant_id: str, now: datetime) -> int:
    """
    Low stock, stale products, fast sellers and a reached profit target.
    Each alert is written at most once per product and period. Returns the
    number of notifications created.
    """
    created = 0
    products = dbx.list_products(tenant_id)

    for p in ins.low_stock(products):
        created += _notify_once(
            tenant_id, "low_stock", now - timedelta(days=1),
            title="📦 Low Stock Alert",
            message=f"{p.name} is running low ({p.stock} units remaining)",
            metadata={"product_id": p.id, "current_stock": p.stock},
        )

    df = ins.transactions_frame(
        dbx.fetch_transactions(tenant_id, now - timedelta(days=settings.STALE_PRODUCT_DAYS))
    )
    for p in ins.stale_products(products, df):
        created += _notify_once(
            tenant_id, "stale_product", now - timedelta(days=7),
            title="⚠️ Stale Product Alert",
            message=f"{p.name} hasn't sold in {settings.STALE_PRODUCT_DAYS} days ({p.stock} units in stock)",
            metadata={"product_id": p.id, "days_without_sale": settings.STALE_PRODUCT_DAYS},
        )

    fast_since = now - timedelta(days=settings.FAST_SELLING_DAYS)
    recent = df[df["created_at"] >= ins.local_time(fast_since)]
    for product_id, name, units in ins.fast_sellers(recent):
        created += _notify_once(
            tenant_id, "fast_selling", fast_since,
            title="🔥 Fast-Selling Product",
            message=f"{name} is selling fast! {units} units sold in the last {settings.FAST_SELLING_DAYS} days",
            metadata={"product_id": product_id, "sales_count": units, "period_days": settings.FAST_SELLING_DAYS},
        )

    today = ins.period_stats(df, now)["today"]
    target = float(settings.PROFIT_TARGET)
    if today.profit >= target:
        midnight = ins.local_time(now).normalize()
        created += _notify_once(
            tenant_id, "high_profit", midnight.to_pydatetime(),
            title="💰 Profit Target Reached!",
            message=f"Today's profit: {today.profit:,.2f} (Target: {target:,.0f})",
            metadata={"profit": today.profit, "target": target, "date": midnight.strftime("%Y-%m-%d")},
        )
    return created


def run_smart_notifications(now: datetime) -> dict[str, int]:
    results = {}
    for tenant_id in dbx.list_tenant_ids():
        try:
            results[tenant_id] = smart_notifications(tenant_id, now)
        except Exception as e:
            logger.error("smart notifications failed for tenant %s: %s", tenant_id, e)
            continue
        logger.info("tenant %s: %d notifications created", tenant_id, results[tenant_id])
    return results
