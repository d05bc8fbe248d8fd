# logger_config.py
# Description: Loguru sink setup for the sync engine (console, rotating app log, JSON metrics log)
#
# Imports
import os
import sys
from typing import Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from travel_journal.Metrics.metrics_logger import ensure_metric_level
#
############################################################################################################
#
# Functions:

DEFAULT_APP_LOG_PATH = '~/.local/share/travel_journal/logs/travel_journal.log'
DEFAULT_METRICS_LOG_PATH = '~/.local/share/travel_journal/logs/travel_journal_metrics.json'

CONSOLE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} - {level} - {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def _ensure_log_dir_exists(file_path: str) -> str:
    """Expand '~' and make sure the directory for the log file exists."""
    expanded_path = os.path.expanduser(str(file_path))
    log_dir = os.path.dirname(expanded_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    return expanded_path


def _only_metrics(record) -> bool:
    return record["level"].name == "METRIC"


def _without_metrics(record) -> bool:
    return record["level"].name != "METRIC"


def setup_logger(
    log_level: str = "INFO",
    console_format: str = CONSOLE_FORMAT,
    app_log_path: Optional[str] = DEFAULT_APP_LOG_PATH,
    metrics_log_path: Optional[str] = DEFAULT_METRICS_LOG_PATH,
    console: bool = True,
):
    """
    Sets up Loguru sinks for the console, a rotating application log, and a JSON metrics log.

    Metric records (level "METRIC") only go to the metrics sink so the console
    and the application log stay readable.

    Args:
        log_level (str): The minimum log level to output (e.g., "DEBUG", "INFO").
        console_format (str): The format string for console output.
        app_log_path (Optional[str]): Path for the text log file. If None, this sink is disabled.
        metrics_log_path (Optional[str]): Path for the JSON metrics log. If None, this sink is disabled.
        console (bool): Whether to log to stdout at all.

    Returns:
        The configured logger instance.
    """
    ensure_metric_level()
    logger.remove()

    if console:
        logger.add(
            sys.stdout,
            level=log_level.upper(),
            format=console_format,
            filter=_without_metrics,
        )

    if app_log_path:
        path = _ensure_log_dir_exists(app_log_path)
        logger.add(
            path,
            level=log_level.upper(),
            format=FILE_FORMAT,
            filter=_without_metrics,
            rotation="10 MB",
            retention="7 days",
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )
        logger.info(f"Application logs will be written to: {path}")

    if metrics_log_path:
        path = _ensure_log_dir_exists(metrics_log_path)
        logger.add(
            path,
            level="METRIC",
            filter=_only_metrics,
            serialize=True,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )
        logger.info(f"JSON metrics logs will be written to: {path}")

    return logger

#
# End of logger_config.py
############################################################################################################
