import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from retail_pos import settings


def setup_logger(log_dir: str | None = None) -> logging.Logger:
    """
    Configure the package logger once.

    Console + daily rotating file under ``settings.LOG_DIR``. Modules log via
    ``logging.getLogger(__name__)`` and propagate up to ``retail_pos``.
    """
    logger = logging.getLogger("retail_pos")
    logger.setLevel(logging.INFO)

    # setup_logger() runs on every Streamlit rerun
    if logger.handlers:
        return logger

    path = Path(log_dir or settings.LOG_DIR)
    path.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = TimedRotatingFileHandler(
        filename=path / "retail_pos.log",
        when="midnight",
        interval=1,
        backupCount=7,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    logger.info("Logger initialized (daily rotation enabled)")
    return logger
