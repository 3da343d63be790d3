"""Alert decision logic — change detection, evaluation, throttling."""

from pricewatch.alerts.detector import classify_transition, detect, percent_of
from pricewatch.alerts.evaluator import ALERT_PRIORITY, AlertEvaluator
from pricewatch.alerts.throttle import NotificationThrottle

__all__ = [
    "ALERT_PRIORITY",
    "AlertEvaluator",
    "NotificationThrottle",
    "classify_transition",
    "detect",
    "percent_of",
]
