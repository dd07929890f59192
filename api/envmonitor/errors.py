
from typing import Optional

from .models import Thresholds


class EnvMonitorError(Exception):
    """Base class for errors raised by the monitoring engine."""


class FeedFetchError(EnvMonitorError):
    """The telemetry source could not be reached or returned an unusable body."""


class ThresholdSyncError(EnvMonitorError):
    """Thresholds were applied locally but the remote store rejected the write."""

    def __init__(self, message: str, applied: Optional[Thresholds] = None) -> None:
        super().__init__(message)
        self.applied = applied


class NotificationPermissionError(EnvMonitorError):
    """No dashboard has granted permission to show system notifications."""
