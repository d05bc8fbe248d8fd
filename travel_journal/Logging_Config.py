# Logging_Config.py
# Description: Application logging setup. Loguru is the single sink; stdlib logging is routed into it.
#
# Imports
import logging
from typing import Any, Dict, Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from travel_journal.Metrics.logger_config import setup_logger
#
########################################################################################################################
#
# Functions:

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


class InterceptHandler(logging.Handler):
    """Forwards stdlib `logging` records (e.g. from the DB layer or httpx) to loguru."""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller the record originated from so loguru reports the right location
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(settings: Optional[Dict[str, Any]] = None, console: bool = True):
    """
    Sets up loguru sinks from the [logging] config section and installs the stdlib bridge.

    Args:
        settings: The full settings dict from `config.load_settings()`. None uses defaults.
        console: Whether to log to stdout.
    """
    logging_settings = (settings or {}).get("logging", {})
    log_level = str(logging_settings.get("log_level", "INFO")).upper()

    setup_logger(
        log_level=log_level,
        app_log_path=logging_settings.get("log_file") or None,
        metrics_log_path=logging_settings.get("metrics_log_file") or None,
        console=console,
    )

    # Route everything that uses the stdlib logging module through loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug(f"Logging configured at level {log_level}.")
    return logger

#
# End of Logging_Config.py
########################################################################################################################
