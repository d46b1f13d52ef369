"""Unit tests for MicrosoftGraphClient (httpx.MockTransport)."""

from datetime import timedelta

import httpx
import pytest

from config.exceptions import (
    InvalidResponseError,
    NetworkError,
    NotAuthenticatedError,
    RateLimitedError,
)
from statuslight.src.integrations.microsoft_graph.client import MicrosoftGraphClient
from statuslight.src.integrations.microsoft_graph.config import GraphConfig
from statuslight.src.models import BusyStatus, Presence, utcnow

BASE_URL = "https://graph.test/v1.0"


class FakeTokens:
    def __init__(self):
        self.invalidated = 0

    async def get_access_token(self):
        return "access-token"

    def invalidate(self):
        self.invalidated += 1


def build_client(handler, tokens=None, timezone_name="Europe/Paris"):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config = GraphConfig(base_url=BASE_URL, calendar_timezone=timezone_name)
    return MicrosoftGraphClient(config, http_client, tokens or FakeTokens())


def graph_event(event_id, start, end, show_as="busy", **extra):
    body = {
        "id": event_id,
        "subject": "Meeting %s" % event_id,
        "start": {"dateTime": start, "timeZone": "UTC"},
        "end": {"dateTime": end, "timeZone": "UTC"},
        "showAs": show_as,
        "isAllDay": False,
    }
    body.update(extra)
    return body


class TestPresence:
    @pytest.mark.asyncio
    async def test_presence_request_and_mapping(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "id": "user",
                    "availability": "Busy",
                    "activity": "InACall",
                    "statusMessage": {"message": {"content": "Heads down"}},
                },
            )

        client = build_client(handler)

        state = await client.get_presence()

        assert state.presence == Presence.IN_A_CALL
        assert state.activity == "InACall"
        assert state.status_message == "Heads down"
        assert requests[0].url.path == "/v1.0/me/presence"
        assert requests[0].headers["Authorization"] == "Bearer access-token"

    @pytest.mark.asyncio
    async def test_unauthorized_invalidates_token(self):
        tokens = FakeTokens()
        client = build_client(lambda r: httpx.Response(401), tokens=tokens)

        with pytest.raises(NotAuthenticatedError):
            await client.get_presence()

        assert tokens.invalidated == 1

    @pytest.mark.asyncio
    async def test_throttled(self):
        client = build_client(lambda r: httpx.Response(429, headers={"Retry-After": "30"}))

        with pytest.raises(RateLimitedError, match="30"):
            await client.get_presence()

    @pytest.mark.asyncio
    async def test_unexpected_status(self):
        client = build_client(lambda r: httpx.Response(400, text="oops"))

        with pytest.raises(InvalidResponseError):
            await client.get_presence()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [500, 503])
    async def test_server_error_is_network_error(self, status):
        client = build_client(lambda r: httpx.Response(status, text="down"))

        with pytest.raises(NetworkError, match=str(status)):
            await client.get_presence()

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = build_client(handler)

        with pytest.raises(NetworkError):
            await client.get_presence()

    @pytest.mark.asyncio
    async def test_malformed_presence(self):
        client = build_client(lambda r: httpx.Response(200, json={"activity": "Away"}))

        with pytest.raises(InvalidResponseError):
            await client.get_presence()


class TestCalendarView:
    @pytest.mark.asyncio
    async def test_window_params_and_timezone_header(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"value": []})

        client = build_client(handler)

        assert await client.get_calendar_view(hours=8) == []

        params = requests[0].url.params
        assert requests[0].url.path == "/v1.0/me/calendar/calendarView"
        assert params["$orderby"] == "start/dateTime"
        assert params["startDateTime"].endswith("Z")
        assert requests[0].headers["Prefer"] == 'outlook.timezone="Europe/Paris"'

    @pytest.mark.asyncio
    async def test_events_are_parsed_and_sorted(self):
        soon = utcnow() + timedelta(minutes=30)
        later = soon + timedelta(hours=2)
        fmt = "%Y-%m-%dT%H:%M:%S.0000000"
        body = {
            "value": [
                graph_event(
                    "b", later.strftime(fmt), (later + timedelta(hours=1)).strftime(fmt)
                ),
                graph_event(
                    "a",
                    soon.strftime(fmt),
                    (soon + timedelta(minutes=15)).strftime(fmt),
                    show_as="tentative",
                    type="occurrence",
                ),
            ]
        }
        client = build_client(lambda r: httpx.Response(200, json=body))

        events = await client.get_calendar_view()

        assert [e.id for e in events] == ["a", "b"]
        assert events[0].show_as == BusyStatus.TENTATIVE
        assert events[0].is_recurring is True
        assert events[1].show_as == BusyStatus.BUSY
        assert events[0].start.tzinfo is not None

    @pytest.mark.asyncio
    async def test_follows_next_link(self):
        pages = {
            "first": {
                "value": [graph_event("a", "2030-01-01T10:00:00", "2030-01-01T10:30:00")],
                "@odata.nextLink": BASE_URL + "/me/calendar/calendarView?$skip=1",
            },
            "second": {
                "value": [graph_event("b", "2030-01-01T09:00:00", "2030-01-01T09:30:00")]
            },
        }

        def handler(request):
            key = "second" if "$skip" in request.url.params else "first"
            return httpx.Response(200, json=pages[key])

        client = build_client(handler)

        events = await client.get_calendar_view()

        assert [e.id for e in events] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_unparseable_datetime(self):
        body = {"value": [graph_event("a", "not-a-date", "2030-01-01T10:00:00")]}
        client = build_client(lambda r: httpx.Response(200, json=body))

        with pytest.raises(InvalidResponseError):
            await client.get_calendar_view()
