"""Microsoft Graph presence and calendar client."""

from datetime import timedelta
from typing import List, Optional

import httpx
import structlog
from pydantic import ValidationError

from config.exceptions import (
    InvalidResponseError,
    NetworkError,
    NotAuthenticatedError,
    RateLimitedError,
)
from statuslight.src.integrations.microsoft_graph.auth import TokenLifecycleManager
from statuslight.src.integrations.microsoft_graph.config import GraphConfig
from statuslight.src.integrations.microsoft_graph.models import (
    GraphCalendarResponse,
    GraphPresenceResponse,
    format_graph_datetime,
)
from statuslight.src.models import CalendarEvent, PresenceState, utcnow

logger = structlog.get_logger(__name__)

# Follow @odata.nextLink at most this many times per calendar read
MAX_CALENDAR_PAGES = 10


class MicrosoftGraphClient:
    """
    Bearer-authenticated reads against Microsoft Graph.

    Attributes:
        config: Graph application settings
        http_client: Shared ``httpx.AsyncClient`` (not owned)
        tokens: Token lifecycle manager providing access tokens
    """

    def __init__(
        self,
        config: GraphConfig,
        http_client: httpx.AsyncClient,
        tokens: TokenLifecycleManager,
        timeout: float = 15.0,
    ):
        self.config = config
        self.http_client = http_client
        self.tokens = tokens
        self.timeout = timeout

    async def _get(
        self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None
    ) -> httpx.Response:
        access_token = await self.tokens.get_access_token()
        request_headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        request_headers.update(headers or {})

        try:
            response = await self.http_client.get(
                url, params=params, headers=request_headers, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            logger.warning("graph_transport_error", url=url, error=str(e))
            raise NetworkError("Microsoft Graph request failed: %s" % e) from e

        if response.status_code == 200:
            return response
        if response.status_code == 401:
            self.tokens.invalidate()
            raise NotAuthenticatedError("Microsoft Graph rejected the access token")
        if response.status_code == 429:
            raise RateLimitedError(
                "Microsoft Graph throttled the request (Retry-After=%s)"
                % response.headers.get("Retry-After", "?")
            )
        if response.status_code >= 500:
            raise NetworkError(
                "Microsoft Graph unavailable (HTTP %d)" % response.status_code
            )
        raise InvalidResponseError(
            "Microsoft Graph HTTP %d: %s" % (response.status_code, response.text[:200])
        )

    async def get_presence(self) -> PresenceState:
        """Current presence of the signed-in user."""
        response = await self._get(f"{self.config.base_url}/me/presence")
        try:
            parsed = GraphPresenceResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise InvalidResponseError("Unexpected presence payload: %s" % e) from e

        state = parsed.to_presence_state()
        logger.debug(
            "presence_fetched",
            availability=parsed.availability,
            activity=parsed.activity,
            presence=state.presence.value,
        )
        return state

    async def get_calendar_view(self, hours: int = 24) -> List[CalendarEvent]:
        """Events between now and ``now + hours``, ordered by start.

        Raises:
            InvalidResponseError: Malformed payload or unparseable date-time
        """
        now = utcnow()
        params = {
            "startDateTime": format_graph_datetime(now),
            "endDateTime": format_graph_datetime(now + timedelta(hours=hours)),
            "$orderby": "start/dateTime",
        }
        headers = {"Prefer": 'outlook.timezone="%s"' % self.config.calendar_timezone}

        events: List[CalendarEvent] = []
        url: Optional[str] = f"{self.config.base_url}/me/calendar/calendarView"
        pages = 0
        while url and pages < MAX_CALENDAR_PAGES:
            response = await self._get(url, params=params, headers=headers)
            try:
                parsed = GraphCalendarResponse.model_validate_json(response.content)
                events.extend(e.to_calendar_event() for e in parsed.value)
            except (ValidationError, ValueError) as e:
                raise InvalidResponseError("Unexpected calendar payload: %s" % e) from e

            # nextLink already carries the query string
            url, params = parsed.next_link, None
            pages += 1

        events.sort(key=lambda e: e.start)
        logger.debug("calendar_fetched", events=len(events), hours=hours)
        return events
