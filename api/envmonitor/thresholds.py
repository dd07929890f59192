
import logging
from typing import Optional

import redis
from pymongo.errors import PyMongoError

from .errors import ThresholdSyncError
from .models import Thresholds
from .repos.mongo_repo import MongoRepo
from .repos.redis_repo import RedisRepo

logger = logging.getLogger(__name__)


class ThresholdStore:
    """
    Holds the one live set of thresholds.

    The remote store (Mongo) is authoritative; a local copy in Redis keeps
    the last applied values across restarts and when the remote is down.
    Changes only affect cycles that run after them.
    """

    def __init__(self, remote: MongoRepo, local: Optional[RedisRepo], defaults: Thresholds) -> None:
        self._remote = remote
        self._local = local
        self._current = self._read_local() or defaults

    @property
    def current(self) -> Thresholds:
        return self._current

    def _read_local(self) -> Optional[Thresholds]:
        if self._local is None:
            return None
        try:
            return self._local.get_cached_thresholds()
        except redis.RedisError as ex:
            logger.warning("local threshold cache unavailable: %s", ex)
            return None

    def _write_local(self, thresholds: Thresholds) -> None:
        if self._local is None:
            return
        try:
            self._local.cache_thresholds(thresholds)
        except redis.RedisError as ex:
            logger.warning("could not cache thresholds locally: %s", ex)

    def load(self) -> Thresholds:
        """Refresh from the remote store; keeps the current values if it is unreachable."""
        try:
            remote = self._remote.get_thresholds()
        except PyMongoError as ex:
            logger.error("error fetching thresholds: %s", ex)
            return self._current
        if remote is not None:
            self._current = remote
            self._write_local(remote)
        return self._current

    def update(self, thresholds: Thresholds) -> Thresholds:
        # applied locally first so the session stays consistent if the remote write fails
        self._current = thresholds
        self._write_local(thresholds)
        try:
            self._remote.save_thresholds(thresholds)
        except PyMongoError as ex:
            logger.error("failed to save thresholds: %s", ex)
            raise ThresholdSyncError(
                "failed to sync thresholds to database; local fallback applied", applied=thresholds
            ) from ex
        logger.info(
            "thresholds updated: T(%g-%g) H(%g-%g)",
            thresholds.temp_low, thresholds.temp_high, thresholds.hum_low, thresholds.hum_high,
        )
        return thresholds
