
import json
from typing import Optional

import redis

from ..models import Preferences, Thresholds

ALERTS_CHANNEL = "alerts:stream"


class RedisRepo:
    def __init__(self, url: str, namespace: str = "envmonitor") -> None:
        self.client = redis.Redis.from_url(url)
        self.namespace = namespace

    def _key(self, *parts: str) -> str:
        return ":".join((self.namespace, *parts))

    def set_latest(self, channel_id: str, doc: dict) -> None:
        self.client.set(self._key("channel", channel_id, "latest"), json.dumps(doc), ex=24*3600)

    def publish_alert(self, alert: dict) -> None:
        self.client.publish(ALERTS_CHANNEL, json.dumps(alert))

    def get_preferences(self) -> Optional[Preferences]:
        raw = self.client.hgetall(self._key("preferences"))
        if not raw:
            return None
        fields = {k.decode(): v.decode() == "true" for k, v in raw.items()}
        return Preferences(**fields)

    def set_preferences(self, prefs: Preferences) -> None:
        self.client.hset(
            self._key("preferences"),
            mapping={k: "true" if v else "false" for k, v in prefs.model_dump().items()},
        )

    # local fallback copy of the thresholds, used when the remote store is unreachable
    def get_cached_thresholds(self) -> Optional[Thresholds]:
        raw = self.client.get(self._key("thresholds"))
        return Thresholds.model_validate_json(raw) if raw else None

    def cache_thresholds(self, thresholds: Thresholds) -> None:
        self.client.set(self._key("thresholds"), thresholds.model_dump_json())
