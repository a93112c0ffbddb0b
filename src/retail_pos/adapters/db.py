from __future__ import annotations
import json
import logging
from datetime import datetime
from typing import Optional, Sequence

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from retail_pos import settings
from retail_pos.domain.errors import CommitError, PromoLimitReached, StockConflictError
from retail_pos.domain.models import CatalogItem, PromoCode, SaleRecord

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = "id, name, buying_price, selling_price, stock, low_stock_threshold, category, barcode"
PROMO_COLUMNS = (
    "id, code, discount_type, discount_value, is_active, valid_from, valid_until, usage_limit, times_used"
)


def _connect():
    return psycopg.connect(
        settings.PG_CONN,
        options=f"-c statement_timeout={settings.STATEMENT_TIMEOUT_MS} -c timezone={settings.TZ}",
    )


# ---------- reads ----------

def list_available_products(tenant_id: str) -> list[CatalogItem]:
    with _connect() as conn, conn.cursor(row_factory=dict_row) as cur:
        cur.execute(
            f"SELECT {PRODUCT_COLUMNS} FROM products WHERE tenant_id = %s AND stock > 0 ORDER BY name",
            (tenant_id,),
        )
        return [CatalogItem.from_row(r) for r in cur.fetchall()]


def list_products(tenant_id: str) -> list[CatalogItem]:
    with _connect() as conn, conn.cursor(row_factory=dict_row) as cur:
        cur.execute(
            f"SELECT {PRODUCT_COLUMNS} FROM products WHERE tenant_id = %s ORDER BY name",
            (tenant_id,),
        )
        return [CatalogItem.from_row(r) for r in cur.fetchall()]


def find_promo_code(tenant_id: str, code: str) -> Optional[PromoCode]:
    with _connect() as conn, conn.cursor(row_factory=dict_row) as cur:
        cur.execute(
            f"SELECT {PROMO_COLUMNS} FROM promo_codes WHERE tenant_id = %s AND UPPER(code) = %s LIMIT 1",
            (tenant_id, code.upper()),
        )
        row = cur.fetchone()
        return PromoCode.from_row(row) if row else None


def fetch_transactions(tenant_id: str, since: Optional[datetime] = None) -> list[dict]:
    sql = (
        "SELECT id, created_at, product_id, product_name, quantity, total_amount, profit, "
        "payment_method, created_by "
        "FROM transactions WHERE tenant_id = %s"
    )
    params: list = [tenant_id]
    if since is not None:
        sql += " AND created_at >= %s"
        params.append(since)
    sql += " ORDER BY created_at"
    with _connect() as conn, conn.cursor(row_factory=dict_row) as cur:
        cur.execute(sql, params)
        return cur.fetchall()


def resolve_tenant(user_id: str) -> Optional[str]:
    with _connect() as conn, conn.cursor() as cur:
        cur.execute("SELECT tenant_id FROM profiles WHERE id = %s", (user_id,))
        row = cur.fetchone()
        return str(row[0]) if row and row[0] else None


def list_tenant_ids() -> list[str]:
    with _connect() as conn, conn.cursor() as cur:
        cur.execute("SELECT id FROM tenants ORDER BY created_at")
        return [str(r[0]) for r in cur.fetchall()]


def operator_names(user_ids: Sequence[str]) -> dict[str, str]:
    """Display name (full name, else email) per profile id."""
    if not user_ids:
        return {}
    with _connect() as conn, conn.cursor(row_factory=dict_row) as cur:
        cur.execute(
            "SELECT id, full_name, email FROM profiles WHERE id::text = ANY(%s)",
            (list(user_ids),),
        )
        return {str(r["id"]): r["full_name"] or r["email"] for r in cur.fetchall()}


def notification_exists(
    tenant_id: str,
    type_: str,
    since: datetime,
    product_id: Optional[str] = None,
) -> bool:
    sql = "SELECT 1 FROM notifications WHERE tenant_id = %s AND type = %s AND created_at >= %s"
    params: list = [tenant_id, type_, since]
    if product_id is not None:
        sql += " AND metadata @> %s"
        params.append(Jsonb({"product_id": product_id}))
    with _connect() as conn, conn.cursor() as cur:
        cur.execute(sql + " LIMIT 1", params)
        return cur.fetchone() is not None


# ---------- writes (run inside the caller's transaction) ----------

def increment_promo_usage(cur, tenant_id: str, promo_id: str, code: str = "") -> None:
    cur.execute(
        """
        UPDATE promo_codes
           SET times_used = times_used + 1, updated_at = now()
         WHERE id = %s AND tenant_id = %s
           AND (usage_limit IS NULL OR times_used < usage_limit)
        """,
        (promo_id, tenant_id),
    )
    if cur.rowcount == 0:
        raise PromoLimitReached(code or promo_id)


def insert_sale_record(cur, record: SaleRecord) -> None:
    cur.execute(
        """
        INSERT INTO transactions(
            tenant_id, product_id, product_name, quantity, unit_price,
            total_amount, profit, payment_method,
            discount_type, discount_value, discount_amount, promo_code,
            created_by, created_at
        )
        VALUES (
            %(tenant_id)s, %(product_id)s, %(product_name)s, %(quantity)s, %(unit_price)s,
            %(total_amount)s, %(profit)s, %(payment_method)s,
            %(discount_type)s, %(discount_value)s, %(discount_amount)s, %(promo_code)s,
            %(created_by)s, %(created_at)s
        )
        """,
        record.as_row(),
    )


def decrement_stock(cur, tenant_id: str, product_id: str, amount: int) -> None:
    # conditional so concurrent checkouts cannot push stock below zero
    cur.execute(
        """
        UPDATE products
           SET stock = stock - %s, updated_at = now()
         WHERE id = %s AND tenant_id = %s AND stock >= %s
        """,
        (amount, product_id, tenant_id, amount),
    )
    if cur.rowcount == 0:
        raise StockConflictError(product_id, amount)


def commit_sale(
    tenant_id: str,
    records: Sequence[SaleRecord],
    promo_id: Optional[str] = None,
    promo_code: str = "",
) -> None:
    """
    Write every sale line, the stock decrements and the promo usage bump in
    one transaction. Any failure rolls all of it back.
    """
    try:
        with _connect() as conn:
            with conn.transaction(), conn.cursor() as cur:
                if promo_id:
                    increment_promo_usage(cur, tenant_id, promo_id, promo_code)
                for rec in records:
                    insert_sale_record(cur, rec)
                    decrement_stock(cur, tenant_id, rec.product_id, rec.quantity)
    except psycopg.Error as e:
        logger.error("sale commit failed for tenant %s: %s", tenant_id, e)
        raise CommitError("Failed to complete sale") from e


def insert_notification(tenant_id: str, title: str, message: str, type_: str, metadata: dict) -> None:
    with _connect() as conn, conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO notifications(tenant_id, title, message, type, metadata)
            VALUES (%s, %s, %s, %s, %s)
            """,
            (tenant_id, title, message, type_, Jsonb(metadata)),
        )
        conn.commit()


def log_run(payload):
    with _connect() as conn, conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO ai_runs(
                tenant_id, user_id, kind, chosen_model,
                winner_latency_ms, winner_cost_usd, trials, prompt_version
            )
            VALUES (%s,%s,%s,%s,%s,%s,%s,%s)
            """,
            (
                payload["tenant_id"], payload["user_id"], payload["kind"],
                payload["chosen_model"], payload["latency_ms"], payload["cost_usd"],
                json.dumps(payload["trials"]), settings.PROMPT_VERSION,
            ),
        )
        conn.commit()
