from __future__ import annotations
import json

FORECAST_SYSTEM = (
    "You are an expert business analyst specializing in retail sales forecasting. "
    "Analyze historical sales data and provide actionable predictions."
)

REORDER_SYSTEM = (
    "You are an inventory management expert. Analyze product stock levels and sales "
    "velocity to provide smart reorder recommendations."
)

FORECAST_RULES = """
Provide:
1. Next 7 days forecast (daily average)
2. Next 30 days forecast (monthly total)
3. Key trends and insights
4. Recommendations for inventory planning

Format your response as JSON with these keys: nextWeekDaily, nextMonthTotal, trends, recommendations
"""

REORDER_RULES = """
For each product, suggest:
1. Recommended reorder quantity
2. Urgency level (Critical/High/Medium)
3. Brief reason

Format as JSON array with keys: productName, reorderQuantity, urgency, reason
"""


def build_forecast_messages(daily: list[dict], stats: dict, currency: str, window_days: int = 30):
    user = (
        "Analyze this sales data and provide a forecast for next week and next month:\n\n"
        f"Sales History (Last {window_days} days, amounts in {currency}):\n"
        f"{json.dumps(daily, indent=2, default=str)}\n\n"
        f"Daily sales mean: {stats['mean']}, standard deviation: {stats['std']} over {stats['days']} trading days.\n"
        f"{FORECAST_RULES}"
    )
    return [{"role": "system", "content": FORECAST_SYSTEM}, {"role": "user", "content": user}]


def build_reorder_messages(critical: list[dict]):
    products = [
        {
            "name": p["name"],
            "currentStock": int(p["stock"]),
            "threshold": int(p["low_stock_threshold"]),
            "dailySales": f"{p['daily_velocity']:.2f}",
            "daysUntilStockout": f"{p['days_until_stockout']:.1f}",
            "buyingPrice": p["buying_price"],
        }
        for p in critical
    ]
    user = (
        "Analyze these products and provide reorder recommendations:\n\n"
        f"{json.dumps(products, indent=2, default=str)}\n"
        f"{REORDER_RULES}"
    )
    return [{"role": "system", "content": REORDER_SYSTEM}, {"role": "user", "content": user}]


FRAUD_SYSTEM = (
    "You are a fraud detection analyst for retail transactions. "
    "Analyze transactions for suspicious patterns."
)

FRAUD_RULES = """
For each transaction, assess:
1. Risk level (High/Medium/Low)
2. Reason for suspicion
3. Recommended action

Format as JSON array with keys: transactionId, riskLevel, reason, action
"""


def build_fraud_messages(flagged: list[dict], mean: float, std: float, currency: str):
    sales = [
        {
            "id": str(t["id"])[:8],
            "product": t["product_name"],
            "quantity": int(t["quantity"]),
            "amount": t["total_amount"],
            "profit": t["profit"],
            "payment": t["payment_method"],
            "time": t["created_at"],
        }
        for t in flagged
    ]
    user = (
        "Analyze these potentially suspicious transactions:\n\n"
        f"Average Transaction: {mean:.2f} {currency}\n"
        f"Standard Deviation: {std:.2f} {currency}\n\n"
        f"Flagged Transactions:\n{json.dumps(sales, indent=2, default=str)}\n"
        f"{FRAUD_RULES}"
    )
    return [{"role": "system", "content": FRAUD_SYSTEM}, {"role": "user", "content": user}]


CLERK_SYSTEM = (
    "You are a business intelligence analyst. Analyze sales clerk performance "
    "and customer behavior to provide actionable insights."
)

CLERK_RULES = """
Provide insights on:
1. Top performing clerk and why
2. Payment method trends
3. Customer purchase patterns
4. Recommendations to increase sales

Format as JSON with keys: topClerk, paymentTrends, purchasePatterns, recommendations
"""


def build_clerk_messages(clerks: list[dict], total: int, first, last):
    user = (
        "Analyze this sales clerk and customer data:\n\n"
        f"Total Transactions: {total}\n"
        f"Time Period: {first} to {last}\n\n"
        f"Top Clerks:\n{json.dumps(clerks, indent=2, default=str)}\n"
        f"{CLERK_RULES}"
    )
    return [{"role": "system", "content": CLERK_SYSTEM}, {"role": "user", "content": user}]


RECOMMEND_SYSTEM = (
    "You are a retail expert. Suggest complementary products that customers might buy together."
)


def build_recommendation_messages(product, candidates, currency: str, count: int = 3):
    listing = "\n".join(f"- {p.name} ({p.selling_price} {currency})" for p in candidates)
    user = (
        f"Current product: {product.name}\n"
        f"Price: {product.selling_price}\n"
        f"Category: {product.category or 'Uncategorized'}\n\n"
        f"Available products:\n{listing}\n\n"
        f"Suggest {count} products from the list that customers might buy with {product.name}. "
        "Return just the product names as a JSON array of strings."
    )
    return [{"role": "system", "content": RECOMMEND_SYSTEM}, {"role": "user", "content": user}]
