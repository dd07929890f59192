import math
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class BreachKey(str, Enum):
    TEMP_HIGH = "temp_high"
    TEMP_LOW = "temp_low"
    HUM_HIGH = "hum_high"
    HUM_LOW = "hum_low"


class Severity(str, Enum):
    DANGER = "danger"
    WARNING = "warning"


class IncidentStatus(str, Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"


class ConnectionStatus(str, Enum):
    RECONNECTING = "reconnecting"
    CONNECTED = "connected"
    ERROR = "error"


class TimeRange(str, Enum):
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"


# --- wire format of the telemetry source
class FeedEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    created_at: datetime
    entry_id: Optional[int] = None
    field1: Optional[Union[str, float]] = None  # temperature, sent as text
    field2: Optional[Union[str, float]] = None  # humidity, sent as text


class FeedResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    channel: Optional[dict] = None
    feeds: List[FeedEntry] = Field(default_factory=list)


def parse_reading(raw: Any) -> Optional[float]:
    """Numeric value of a raw feed field, or None when it is indeterminate."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(str(raw).strip())
    except ValueError:
        return None
    if math.isnan(value):
        return None
    return value


class Sample(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    temperature: Optional[float] = None  # None means indeterminate
    humidity: Optional[float] = None
    entry_id: Optional[int] = None

    @classmethod
    def from_feed(cls, entry: FeedEntry) -> "Sample":
        return cls(
            timestamp=entry.created_at,
            temperature=parse_reading(entry.field1),
            humidity=parse_reading(entry.field2),
            entry_id=entry.entry_id,
        )


class Thresholds(BaseModel):
    # High < Low is legal and evaluated literally
    temp_high: float = Field(allow_inf_nan=False)
    temp_low: float = Field(allow_inf_nan=False)
    hum_high: float = Field(allow_inf_nan=False)
    hum_low: float = Field(allow_inf_nan=False)


class Incident(BaseModel):
    id: str
    breach_key: BreachKey
    severity: Severity
    title: str
    description: str
    created_at: datetime
    status: IncidentStatus = IncidentStatus.ACTIVE


class Preferences(BaseModel):
    sound_enabled: bool = True
    notifications_enabled: bool = True


class PreferencesUpdate(BaseModel):
    sound_enabled: Optional[bool] = None
    notifications_enabled: Optional[bool] = None


class RangeIn(BaseModel):
    range: TimeRange


class PollingIn(BaseModel):
    enabled: bool


class StatusOut(BaseModel):
    connection: ConnectionStatus
    last_sync: Optional[datetime] = None
    session_active: bool
    auto_refresh: bool
    time_range: TimeRange


class AlertsOut(BaseModel):
    has_unacknowledged: bool
    alerts: List[Incident]
