
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .models import Thresholds, TimeRange


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    channel_id: str
    read_key: str
    thingspeak_url: str
    http_timeout: float
    poll_interval: float
    default_range: TimeRange

    mongo_uri: str
    mongo_db: str
    threshold_config_id: str
    redis_url: str

    default_thresholds: Thresholds
    auto_start_session: bool
    log_level: str


def get_settings() -> Settings:
    # .env is optional; real environment variables win
    load_dotenv(override=False)

    return Settings(
        channel_id=os.getenv("THINGSPEAK_CHANNEL_ID", ""),
        read_key=os.getenv("THINGSPEAK_READ_KEY", ""),
        thingspeak_url=os.getenv("THINGSPEAK_BASE_URL", "https://api.thingspeak.com"),
        http_timeout=float(os.getenv("HTTP_TIMEOUT_SECONDS", "10")),
        poll_interval=float(os.getenv("POLL_INTERVAL_SECONDS", "20")),
        default_range=TimeRange(os.getenv("DEFAULT_TIME_RANGE", "24h")),
        mongo_uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
        mongo_db=os.getenv("MONGO_DB", "env_monitor"),
        threshold_config_id=os.getenv("THRESHOLD_CONFIG_ID", "global"),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        default_thresholds=Thresholds(
            temp_high=float(os.getenv("THRESHOLD_TEMP_HIGH", "30")),
            temp_low=float(os.getenv("THRESHOLD_TEMP_LOW", "15")),
            hum_high=float(os.getenv("THRESHOLD_HUM_HIGH", "75")),
            hum_low=float(os.getenv("THRESHOLD_HUM_LOW", "30")),
        ),
        auto_start_session=_env_bool("AUTO_START_SESSION"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
