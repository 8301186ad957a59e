"""Logging for the summit_crm pipelines: stdout, a rotating file and optional Better Stack shipping."""
import logging
import sys
from logging.handlers import RotatingFileHandler

from logtail import LogtailHandler

from summit_crm.settings import Settings

logger = logging.getLogger("summit_crm")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_NAME = "summit_crm.log"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

# Client libraries that log every HTTP round trip at INFO/DEBUG
QUIET_LOGGERS = ("googleapiclient.discovery", "googleapiclient.discovery_cache", "google.auth", "urllib3")


def _log_level(settings: Settings) -> int:
    level = logging.getLevelName(settings.log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def _pipeline_file_handler(settings: Settings, level: int, formatter: logging.Formatter) -> logging.Handler:
    settings.logs_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        settings.logs_dir / LOG_FILE_NAME,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _better_stack_handler(settings: Settings, formatter: logging.Formatter) -> logging.Handler:
    kwargs = {"source_token": settings.betterstack_source_token}
    if settings.betterstack_ingest_host:
        kwargs["host"] = settings.betterstack_ingest_host
    handler = LogtailHandler(**kwargs)
    # Queue traffic is shipped at INFO and above; DEBUG stays local
    handler.setLevel(logging.INFO)
    handler.setFormatter(formatter)
    return handler


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure the root logger for a CLI run or the scheduler loop."""
    level = _log_level(settings)
    formatter = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)
    root.addHandler(_pipeline_file_handler(settings, level, formatter))

    if settings.betterstack_source_token:
        try:
            root.addHandler(_better_stack_handler(settings, formatter))
            host = settings.betterstack_ingest_host or "default ingest host"
            logger.info(f"Better Stack log shipping enabled for summit_crm ({host})")
        except Exception as e:
            logger.warning(f"Could not attach Better Stack handler, continuing with local logs: {e}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger
