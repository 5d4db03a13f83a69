import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Mounted as a volume in the container so logs survive restarts.
log_dir = Path("logs")

LOG_FORMAT = "%(asctime)s - [%(name)s] - %(levelname)s - %(message)s"


def setup_logging(level: int = logging.INFO):
    """
    Install the application-wide logging configuration.

    Logs go to stdout for development and to a size-rotated file for
    production. Handlers installed by uvicorn are replaced so every record
    shares the same format.
    """
    log_dir.mkdir(exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(level)

    if logger.hasHandlers():
        logger.handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(stdout_handler)

    # app.log rotates to app.log.1 ... app.log.5 after 5 MB
    file_handler = RotatingFileHandler(
        log_dir / "app.log",
        maxBytes=5 * 1024 * 1024,
        backupCount=5
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)
