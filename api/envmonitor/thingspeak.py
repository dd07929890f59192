
import logging
from typing import Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from .errors import FeedFetchError
from .models import FeedResponse, Sample, TimeRange

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.thingspeak.com"

# results, days per history window (roughly one point per 10 min for 24h)
HISTORY_WINDOWS: Dict[TimeRange, Tuple[int, int]] = {
    TimeRange.DAY: (144, 1),
    TimeRange.WEEK: (500, 7),
    TimeRange.MONTH: (1000, 30),
}


class ThingSpeakClient:
    """Read-only client for a ThingSpeak channel feed (field1=temperature, field2=humidity)."""

    def __init__(
        self,
        channel_id: str,
        read_key: str = "",
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.channel_id = channel_id
        self._read_key = read_key
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @property
    def _path(self) -> str:
        return f"/channels/{self.channel_id}/feeds.json"

    async def _get_feeds(self, params: Dict[str, int], what: str) -> FeedResponse:
        query: Dict[str, object] = dict(params)
        if self._read_key:
            query["api_key"] = self._read_key
        try:
            resp = await self._client.get(self._path, params=query)
            resp.raise_for_status()
            body = FeedResponse.model_validate(resp.json())
        except (httpx.HTTPError, ValueError, ValidationError) as ex:
            # ValueError covers a body that is not JSON at all
            raise FeedFetchError(f"failed to fetch {what}: {ex}") from ex
        logger.debug("fetched %d entries for %s", len(body.feeds), what)
        return body

    async def fetch_latest(self) -> Optional[Sample]:
        body = await self._get_feeds({"results": 1}, "current reading")
        if not body.feeds:
            return None
        return Sample.from_feed(body.feeds[-1])

    async def fetch_history(self, time_range: TimeRange) -> List[Sample]:
        results, days = HISTORY_WINDOWS[time_range]
        body = await self._get_feeds({"results": results, "days": days}, "historical data")
        return [Sample.from_feed(e) for e in body.feeds]

    async def aclose(self) -> None:
        await self._client.aclose()
