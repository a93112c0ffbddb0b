# daily_summary.py
# Writes today's "Daily Sales Summary" notification for every shop.
# Run from cron once a day, after closing time.
import sys
from datetime import datetime, timezone

from retail_pos import settings
from retail_pos.log import setup_logger
from retail_pos.services.report_service import run_daily_summaries


def main():
    if not settings.PG_CONN:
        print("ERROR: Set PG_CONN env var to your Postgres connection string.")
        sys.exit(1)

    logger = setup_logger()
    logger.info("Generating daily sales summaries...")
    results = run_daily_summaries(datetime.now(timezone.utc))
    written = sum(1 for r in results.values() if r is not None)
    logger.info("Daily sales summaries completed: %d of %d shops had sales", written, len(results))


if __name__ == "__main__":
    main()
