# smart_notifications.py
# Low-stock, stale-product, fast-seller and profit-target alerts for every shop.
# Run from cron every few minutes; repeats within a period are skipped.
import sys
from datetime import datetime, timezone

from retail_pos import settings
from retail_pos.log import setup_logger
from retail_pos.services.report_service import run_smart_notifications


def main():
    if not settings.PG_CONN:
        print("ERROR: Set PG_CONN env var to your Postgres connection string.")
        sys.exit(1)

    logger = setup_logger()
    logger.info("Starting smart notifications check...")
    results = run_smart_notifications(datetime.now(timezone.utc))
    logger.info("Smart notifications completed: %d created", sum(results.values()))


if __name__ == "__main__":
    main()
