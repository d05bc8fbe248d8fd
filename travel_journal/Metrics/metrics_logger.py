# metrics_logger.py
# Description: Structured metric records (counters, histograms) emitted through loguru
#
# Imports
from datetime import datetime, timezone
from typing import Any, Optional, Dict, Union
#
# Third-party Imports
from loguru import logger
#
# Local Imports
#
############################################################################################################
#
# Functions:

LabelValue = Union[str, int, float, bool]
LabelDict = Dict[str, LabelValue]

METRIC_LEVEL_NAME = "METRIC"


def ensure_metric_level() -> None:
    """Registers the custom METRIC level once, so sinks can filter metrics apart from app logs."""
    try:
        logger.level(METRIC_LEVEL_NAME)
    except ValueError:
        logger.level(METRIC_LEVEL_NAME, no=25, color="<blue>")


ensure_metric_level()


def _log_metric(
        metric_name: str,
        metric_type: str,
        value: Any,
        labels: Optional[LabelDict] = None,
):
    """Log one metric with its data bound at the top level of the record's `extra`."""
    bound_logger = logger.bind(
        event=metric_name,
        type=metric_type,
        value=value,
        labels=labels or {},
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    bound_logger.log(METRIC_LEVEL_NAME, f"{metric_type.capitalize()} '{metric_name}': {value}")


class MetricsLogger:
    """
    Metrics API carrying a set of base labels, e.g. one instance per component.
    """

    def __init__(self, base_labels: Optional[LabelDict] = None):
        self._base_labels = base_labels or {}

    def _get_labels(self, labels: Optional[LabelDict]) -> LabelDict:
        final_labels = self._base_labels.copy()
        if labels:
            final_labels.update(labels)
        return final_labels

    def log_counter(self, name: str, value: int = 1, labels: Optional[LabelDict] = None):
        _log_metric(name, "counter", value, self._get_labels(labels))

    def log_histogram(self, name: str, value: float, labels: Optional[LabelDict] = None):
        _log_metric(name, "histogram", value, self._get_labels(labels))


#
# End of metrics_logger.py
############################################################################################################
