"""
Vehicle position feed client.

Fetches a GTFS-realtime vehicle-positions feed rendered as JSON and turns it
into a FeedSnapshot:

    {"header": {"timestamp": 1700000003},
     "entity": [{"id": "4012", "vehicle": {"timestamp": 1700000000}}, ...]}

Protobuf-JSON renders 64-bit integers as strings, so numeric fields are
accepted in either form.

Example:
    >>> async with FeedClient(settings.feed) as client:
    ...     snapshot = await client.fetch()
    >>> snapshot.dataset_timestamp
    1700000003
"""

import logging
from typing import Any

import httpx

from config.constants import U64_MAX
from config.logging_config import LogCategory
from config.settings import FeedConfig
from core.domain.entities import FeedSnapshot, VehicleUpdate

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """Transient failure fetching or parsing the feed. The caller skips the tick."""


def _as_timestamp(value: Any) -> int | None:
    """Unix seconds as a u64, or None when the value is missing or unusable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip().isdecimal():
        value = int(value.strip())
    if isinstance(value, int) and 0 <= value <= U64_MAX:
        return value
    return None


def parse_feed(payload: Any) -> FeedSnapshot:
    """
    Build a snapshot from decoded feed JSON.

    Entities without a vehicle, without an id or without a usable vehicle
    timestamp are ignored.

    Raises:
        FeedError: If the header timestamp is missing or invalid, or the
            entity field is not a list
    """
    if not isinstance(payload, dict):
        raise FeedError(f"Feed payload is {type(payload).__name__}, expected object")

    header = payload.get("header")
    dataset_ts = _as_timestamp(header.get("timestamp")) if isinstance(header, dict) else None
    if dataset_ts is None:
        raise FeedError("Feed header has no valid timestamp")

    entities = payload.get("entity")
    if entities is None:
        entities = []
    elif not isinstance(entities, list):
        raise FeedError(f"Feed entity field is {type(entities).__name__}, expected list")

    vehicles = []
    skipped = 0
    for entity in entities:
        if not isinstance(entity, dict):
            skipped += 1
            continue
        vehicle = entity.get("vehicle")
        entity_id = entity.get("id")
        if not isinstance(vehicle, dict) or not entity_id:
            skipped += 1
            continue
        ts = _as_timestamp(vehicle.get("timestamp"))
        if ts is None:
            skipped += 1
            continue
        vehicles.append(VehicleUpdate(entity_id=str(entity_id), timestamp=ts))

    if skipped:
        logger.debug(f"{LogCategory.FEED} Ignored {skipped} entities without vehicle data")
    return FeedSnapshot(dataset_timestamp=dataset_ts, vehicles=tuple(vehicles))


class FeedClient:
    """
    Async HTTP client for the vehicle feed.

    One connection pool is kept for the life of the client; use it as an
    async context manager or call ``aclose()``.
    """

    def __init__(self, config: FeedConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.url = config.url
        self.timeout = config.timeout_seconds
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": config.user_agent, "Accept": "application/json"},
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "FeedClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(self) -> FeedSnapshot:
        """
        Fetch and parse one snapshot.

        Raises:
            FeedError: On timeout, transport error, non-2xx status or bad payload
        """
        try:
            response = await self._client.get(self.url)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            raise FeedError(f"Feed request timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise FeedError(f"Feed returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FeedError(f"Feed request failed: {e}") from e
        except ValueError as e:
            raise FeedError(f"Feed body is not valid JSON: {e}") from e

        return parse_feed(payload)
