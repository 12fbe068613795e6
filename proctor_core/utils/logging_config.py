"""
Logging setup for hosts embedding the proctoring core

Console output plus, when enabled, two rotating files in LOG_DIR:
- <service>.log: everything at the configured level
- <service>-events.log: only the [PROCTOR] event lines, kept as an audit trail
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from ..config import ProctorSettings, settings as default_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s"
EVENT_FORMAT = "%(asctime)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

EVENT_LOGGER = "proctor_core.utils.logging"


def _rotating_handler(path: Path, fmt: str, max_mb: int, backups: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(fmt, DATE_FORMAT))
    return handler


def setup_logging(
    service_name: str = "proctor-core",
    level: Optional[str] = None,
    log_to_file: Optional[bool] = None,
    log_to_console: bool = True,
    settings: Optional[ProctorSettings] = None
) -> logging.Logger:
    """
    Configure the root logger for a proctoring host.

    Args:
        service_name: Logger name and log file prefix
        level: DEBUG, INFO, WARNING or ERROR; defaults to settings.LOG_LEVEL
        log_to_file: Write rotating files to settings.LOG_DIR; defaults to settings.LOG_TO_FILE
        log_to_console: Write to stdout
        settings: Settings to read defaults from

    Returns:
        Logger named after the service
    """
    settings = settings or default_settings
    level = level or settings.LOG_LEVEL
    if log_to_file is None:
        log_to_file = settings.LOG_TO_FILE

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = []

    if log_to_console:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        root_logger.addHandler(console)

    event_logger = logging.getLogger(EVENT_LOGGER)
    for handler in list(event_logger.handlers):
        event_logger.removeHandler(handler)
        handler.close()

    log_dir = None
    if log_to_file:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        root_logger.addHandler(_rotating_handler(log_dir / f"{service_name}.log", LOG_FORMAT, 10, 5))

        events = _rotating_handler(log_dir / f"{service_name}-events.log", EVENT_FORMAT, 5, 10)
        events.setLevel(logging.INFO)
        event_logger.addHandler(events)

    logger = logging.getLogger(service_name)
    logger.info(f"Logging configured: level={level} dir={log_dir or '-'}")
    return logger
