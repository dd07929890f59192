
import logging
from typing import Optional

import redis

from .models import Preferences, PreferencesUpdate
from .repos.redis_repo import RedisRepo

logger = logging.getLogger(__name__)

SOUND = "sound_enabled"
NOTIFICATIONS = "notifications_enabled"


class PreferenceStore:
    """Audio cue / system notification toggles; both default to on."""

    def __init__(self, repo: Optional[RedisRepo]) -> None:
        self._repo = repo
        self._prefs = self._read() or Preferences()

    def _read(self) -> Optional[Preferences]:
        if self._repo is None:
            return None
        try:
            return self._repo.get_preferences()
        except redis.RedisError as ex:
            logger.warning("could not read preferences: %s", ex)
            return None

    @property
    def current(self) -> Preferences:
        return self._prefs.model_copy()

    def is_enabled(self, name: str) -> bool:
        return bool(getattr(self._prefs, name))

    def update(self, change: PreferencesUpdate) -> Preferences:
        self._prefs = self._prefs.model_copy(update=change.model_dump(exclude_none=True))
        if self._repo is not None:
            try:
                self._repo.set_preferences(self._prefs)
            except redis.RedisError as ex:
                logger.warning("could not persist preferences: %s", ex)
        return self.current
