"""
Microsoft Graph OAuth2 token lifecycle.

State machine Unauthenticated -> Authenticated <-> Refreshing. Only one
refresh exchange may be in flight; concurrent callers wait on it. A
rejected refresh clears the session and requires a new interactive
sign-in.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

import httpx
import structlog
from google_auth_oauthlib.flow import InstalledAppFlow
from pydantic import BaseModel, ConfigDict, ValidationError

from config.exceptions import (
    AuthExpiredError,
    ConfigurationError,
    InvalidResponseError,
    NetworkError,
    NotAuthenticatedError,
)
from statuslight.src.adapters.secret_store import SecretKeys, SecretStore
from statuslight.src.core.observable import ObservableValue
from statuslight.src.integrations.microsoft_graph.config import GraphConfig
from statuslight.src.integrations.microsoft_graph.models import TokenResponse
from statuslight.src.models import utcnow

logger = structlog.get_logger(__name__)

REFRESH_BUFFER_SECONDS = 300


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


class OAuthTokenSet(BaseModel):
    """Access token, optional refresh token and absolute expiry.

    Attributes:
        access_token: Bearer token for Graph calls
        refresh_token: Token used for the refresh grant
        expires_at: Absolute expiry instant (tz-aware)
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime

    def is_valid(
        self, now: Optional[datetime] = None, buffer_seconds: float = REFRESH_BUFFER_SECONDS
    ) -> bool:
        """Valid iff ``now < expires_at - buffer``."""
        now = now or utcnow()
        return now < self.expires_at - timedelta(seconds=buffer_seconds)

    @classmethod
    def from_token_response(
        cls, response: TokenResponse, now: Optional[datetime] = None
    ) -> "OAuthTokenSet":
        now = now or utcnow()
        return cls(
            access_token=response.access_token,
            refresh_token=response.refresh_token,
            expires_at=now + timedelta(seconds=response.expires_in),
        )


class Authorizer(Protocol):
    """Interactive authorization exchange (browser + redirect)."""

    async def authorize(self) -> OAuthTokenSet: ...


class InstalledAppAuthorizer:
    """Authorization-code grant through a localhost redirect.

    Opens the system browser on the authority's authorize endpoint and
    exchanges the returned code for tokens (PKCE enabled).
    """

    def __init__(self, config: GraphConfig):
        self.config = config

    def _client_config(self) -> dict:
        return {
            "installed": {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret or "",
                "auth_uri": self.config.authorize_endpoint,
                "token_uri": self.config.token_endpoint,
                "redirect_uris": ["http://localhost"],
            }
        }

    async def authorize(self) -> OAuthTokenSet:
        if not self.config.client_id:
            raise ConfigurationError("Microsoft Graph client id is not configured")

        flow = InstalledAppFlow.from_client_config(
            self._client_config(),
            scopes=self.config.scopes,
            autogenerate_code_verifier=True,
        )
        # Interactive flow blocks until the browser redirect comes back
        try:
            creds = await asyncio.to_thread(
                flow.run_local_server,
                port=self.config.redirect_port,
                open_browser=True,
            )
        except Exception as e:
            raise NotAuthenticatedError("Interactive sign-in failed: %s" % e) from e

        # google-auth reports expiry as naive UTC
        if creds.expiry is None:
            expiry = utcnow() + timedelta(hours=1)
        else:
            expiry = creds.expiry.replace(tzinfo=timezone.utc)

        return OAuthTokenSet(
            access_token=creds.token,
            refresh_token=creds.refresh_token,
            expires_at=expiry,
        )


class TokenLifecycleManager:
    """Owns the Graph token set and decides when to refresh it.

    Attributes:
        state: Observable :class:`AuthState`
        buffer_seconds: Refresh this long before actual expiry
    """

    def __init__(
        self,
        config: GraphConfig,
        http_client: httpx.AsyncClient,
        store: Optional[SecretStore] = None,
        authorizer: Optional[Authorizer] = None,
        buffer_seconds: float = REFRESH_BUFFER_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.http_client = http_client
        self.store = store
        self.authorizer = authorizer or InstalledAppAuthorizer(config)
        self.buffer_seconds = buffer_seconds
        self._clock = clock
        self._tokens: Optional[OAuthTokenSet] = None
        self._lock = asyncio.Lock()
        # Bumped on sign-out so a late refresh result is discarded
        self._generation = 0
        self.state: ObservableValue[AuthState] = ObservableValue(
            "auth_state", AuthState.UNAUTHENTICATED
        )

    @property
    def tokens(self) -> Optional[OAuthTokenSet]:
        return self._tokens

    @property
    def is_authenticated(self) -> bool:
        return self._tokens is not None

    async def load(self) -> bool:
        """Restore a persisted token set, returns True when one was found."""
        if self.store is None:
            return False

        data = await self.store.retrieve_json(SecretKeys.MS_TOKENS)
        if not data:
            return False

        try:
            tokens = OAuthTokenSet.model_validate(data)
        except ValidationError as e:
            logger.warning("stored_tokens_invalid", error=str(e))
            await self.store.delete(SecretKeys.MS_TOKENS)
            return False

        self._tokens = tokens
        self.state.set(AuthState.AUTHENTICATED)
        logger.info(
            "tokens_restored",
            expires_at=tokens.expires_at.isoformat(),
            has_refresh_token=tokens.refresh_token is not None,
        )
        return True

    async def authenticate(self) -> OAuthTokenSet:
        """Run the interactive flow and persist the resulting token set."""
        if not self.config.client_id:
            raise ConfigurationError("Microsoft Graph client id is not configured")

        tokens = await self.authorizer.authorize()
        self._generation += 1
        self._tokens = tokens
        await self._persist(tokens)
        self.state.set(AuthState.AUTHENTICATED)
        logger.info("teams_authenticated", expires_at=tokens.expires_at.isoformat())
        return tokens

    async def get_access_token(self) -> str:
        """Return a valid access token, refreshing it if needed.

        Raises:
            NotAuthenticatedError: No session
            AuthExpiredError: Refresh was rejected (session cleared)
            NetworkError: Token endpoint unreachable (session kept)
        """
        tokens = self._tokens
        if tokens is None:
            raise NotAuthenticatedError("Not signed in to Microsoft Graph")
        if tokens.is_valid(self._clock(), self.buffer_seconds):
            return tokens.access_token

        async with self._lock:
            # Another caller may have refreshed while we waited
            tokens = self._tokens
            if tokens is None:
                raise NotAuthenticatedError("Not signed in to Microsoft Graph")
            if tokens.is_valid(self._clock(), self.buffer_seconds):
                return tokens.access_token

            if not tokens.refresh_token:
                await self._clear()
                raise AuthExpiredError("Access token expired and no refresh token available")

            return await self._refresh(tokens)

    async def _refresh(self, tokens: OAuthTokenSet) -> str:
        generation = self._generation
        self.state.set(AuthState.REFRESHING)
        logger.info("token_refresh_started")

        try:
            new_tokens = await self._exchange_refresh_token(tokens.refresh_token)
        except AuthExpiredError:
            if generation == self._generation:
                await self._clear()
            raise
        except (NetworkError, InvalidResponseError):
            if generation == self._generation:
                self.state.set(AuthState.AUTHENTICATED)
            raise

        if generation != self._generation:
            logger.info("token_refresh_discarded", reason="signed_out")
            raise NotAuthenticatedError("Signed out during token refresh")

        if new_tokens.refresh_token is None:
            new_tokens = new_tokens.model_copy(update={"refresh_token": tokens.refresh_token})

        self._tokens = new_tokens
        await self._persist(new_tokens)
        self.state.set(AuthState.AUTHENTICATED)
        logger.info("token_refreshed", expires_at=new_tokens.expires_at.isoformat())
        return new_tokens.access_token

    async def _exchange_refresh_token(self, refresh_token: str) -> OAuthTokenSet:
        data = {
            "client_id": self.config.client_id or "",
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
            "scope": self.config.scope_string,
        }
        if self.config.client_secret:
            data["client_secret"] = self.config.client_secret

        try:
            response = await self.http_client.post(
                self.config.token_endpoint,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            logger.warning("token_refresh_transport_error", error=str(e))
            raise NetworkError("Token refresh failed: %s" % e) from e

        if 500 <= response.status_code <= 599:
            raise NetworkError("Token endpoint HTTP %d" % response.status_code)
        if response.status_code != 200:
            logger.warning(
                "token_refresh_rejected",
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise AuthExpiredError()

        try:
            parsed = TokenResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise InvalidResponseError("Unexpected token endpoint payload: %s" % e) from e

        return OAuthTokenSet.from_token_response(parsed, now=self._clock())

    def invalidate(self) -> None:
        """Mark the access token stale (after a 401) so the next call refreshes."""
        if self._tokens is None:
            return
        self._tokens = self._tokens.model_copy(
            update={"expires_at": datetime.fromtimestamp(0, tz=timezone.utc)}
        )
        logger.info("access_token_invalidated")

    async def sign_out(self) -> None:
        """Clear the session unconditionally, even during a refresh."""
        self._generation += 1
        await self._clear()
        logger.info("teams_signed_out")

    async def _clear(self) -> None:
        self._tokens = None
        self.state.set(AuthState.UNAUTHENTICATED)
        if self.store is not None:
            await self.store.delete(SecretKeys.MS_TOKENS)

    async def _persist(self, tokens: OAuthTokenSet) -> None:
        if self.store is not None:
            await self.store.store_json(tokens.model_dump(mode="json"), SecretKeys.MS_TOKENS)
