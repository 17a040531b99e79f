"""
Tests for the vehicle feed client and payload parsing.
"""

import httpx
import pytest

from config.settings import FeedConfig
from data.ingestion.client import FeedClient, FeedError, parse_feed

FEED = {
    "header": {"timestamp": 1_700_000_003},
    "entity": [
        {"id": "4012", "vehicle": {"timestamp": 1_700_000_000}},
        {"id": "4013", "vehicle": {"timestamp": "1700000001"}},
        {"id": "alert-1", "alert": {}},
        {"id": "4014", "vehicle": {}},
        {"vehicle": {"timestamp": 1_700_000_002}},
    ],
}


class TestParseFeed:
    def test_parses_vehicles(self):
        snapshot = parse_feed(FEED)

        assert snapshot.dataset_timestamp == 1_700_000_003
        assert [(v.entity_id, v.timestamp) for v in snapshot.vehicles] == [
            ("4012", 1_700_000_000),
            ("4013", 1_700_000_001),
        ]

    def test_string_header_timestamp(self):
        snapshot = parse_feed({"header": {"timestamp": "1700000003"}, "entity": []})
        assert snapshot.dataset_timestamp == 1_700_000_003
        assert snapshot.vehicles == ()

    def test_missing_entity_list(self):
        assert parse_feed({"header": {"timestamp": 5}}).vehicles == ()

    @pytest.mark.parametrize("entities", [5, "4012", {"id": "4012"}])
    def test_entity_field_not_a_list(self, entities):
        with pytest.raises(FeedError):
            parse_feed({"header": {"timestamp": 1}, "entity": entities})

    def test_timestamp_beyond_u64_is_ignored(self):
        snapshot = parse_feed(
            {
                "header": {"timestamp": 1_700_000_003},
                "entity": [
                    {"id": "bad", "vehicle": {"timestamp": 2**64 + 5}},
                    {"id": "bad-str", "vehicle": {"timestamp": str(2**64)}},
                    {"id": "max", "vehicle": {"timestamp": 2**64 - 1}},
                ],
            }
        )
        assert [v.entity_id for v in snapshot.vehicles] == ["max"]

    def test_header_timestamp_beyond_u64(self):
        with pytest.raises(FeedError):
            parse_feed({"header": {"timestamp": 2**64}, "entity": []})

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"entity": []},
            {"header": {}, "entity": []},
            {"header": {"timestamp": "soon"}, "entity": []},
            {"header": {"timestamp": -1}, "entity": []},
        ],
    )
    def test_invalid_header(self, payload):
        with pytest.raises(FeedError):
            parse_feed(payload)


def make_client(handler) -> FeedClient:
    config = FeedConfig(url="https://feed.example/vehicles", timeout_seconds=1.0)
    return FeedClient(config, transport=httpx.MockTransport(handler))


class TestFeedClient:
    @pytest.mark.asyncio
    async def test_fetch(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["ua"] = request.headers["User-Agent"]
            return httpx.Response(200, json=FEED)

        async with make_client(handler) as client:
            snapshot = await client.fetch()

        assert len(snapshot.vehicles) == 2
        assert seen["ua"] == FeedConfig().user_agent

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        async with make_client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(FeedError, match="503"):
                await client.fetch()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(FeedError, match="failed"):
                await client.fetch()

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        async with make_client(handler) as client:
            with pytest.raises(FeedError, match="timed out"):
                await client.fetch()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async with make_client(lambda request: httpx.Response(200, content=b"<html>")) as client:
            with pytest.raises(FeedError, match="JSON"):
                await client.fetch()

    @pytest.mark.asyncio
    async def test_malformed_entity_field(self):
        body = {"header": {"timestamp": 1_700_000_003}, "entity": 5}
        async with make_client(lambda request: httpx.Response(200, json=body)) as client:
            with pytest.raises(FeedError, match="expected list"):
                await client.fetch()
