"""
Application state container and the FastAPI dependencies reading it.

Every collaborator of the authentication flows is built once per
application and reached by routes through ``request.app.state.app_state``.
"""

import logging
from typing import Optional

import httpx
from fastapi import HTTPException, Request, status

from .auth.exchange import AuthorizationCodeExchanger
from .auth.hashing import NonceHasher
from .auth.idp import IdpGateway
from .auth.refresh import TokenRefresher
from .auth.validator import IdTokenValidator
from .auth.verifier import ClaimsVerifier, build_claims_verifier
from .config import Settings
from .session.store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    SessionStore,
)


logger = logging.getLogger(__name__)


class AppState:
    """
    Shared resources of one application instance.

    Attributes:
        settings: Loaded configuration
        kv: Backing key-value store
        store: Session view over ``kv``
        hasher: Nonce hasher
        validator: ID Token claim validator
        verifier: ID Token signature/expiry verifier
        idp: IdP token endpoint client
        exchanger: Authorization code flow
        refresher: Refresh flow
        idp_client: httpx client for the IdP and verification service
        upstream_client: httpx client for the backend, if configured
    """

    def __init__(
        self,
        settings: Settings,
        kv: Optional[KeyValueStore] = None,
        verifier: Optional[ClaimsVerifier] = None,
        idp_client: Optional[httpx.AsyncClient] = None,
        upstream_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings

        if kv is None:
            if settings.SESSION_STORE_URL:
                kv = RedisKeyValueStore(settings.SESSION_STORE_URL)
            else:
                kv = InMemoryKeyValueStore()
        self.kv = kv
        self.store = SessionStore(
            kv,
            session_ttl_seconds=settings.SESSION_TIMEOUT_SECONDS,
            refresh_ttl_seconds=settings.REFRESH_TIMEOUT_SECONDS,
        )

        self.idp_client = idp_client or httpx.AsyncClient()
        if upstream_client is None and settings.upstream_url_str:
            upstream_client = httpx.AsyncClient(
                base_url=settings.upstream_url_str,
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        self.upstream_client = upstream_client

        self.hasher = NonceHasher(settings.OIDC_HMAC_KEY)
        self.validator = IdTokenValidator(settings.OIDC_CLIENT, self.hasher)
        self.verifier = verifier or build_claims_verifier(settings, self.idp_client)
        self.idp = IdpGateway(settings, self.idp_client)

        self.exchanger = AuthorizationCodeExchanger(
            self.idp,
            self.verifier,
            self.validator,
            self.store,
            post_login_redirect=settings.POST_LOGIN_REDIRECT,
        )
        self.refresher = TokenRefresher(self.idp, self.verifier, self.validator, self.store)

    async def start(self) -> None:
        if isinstance(self.kv, RedisKeyValueStore):
            await self.kv.start()

    async def stop(self) -> None:
        if isinstance(self.kv, RedisKeyValueStore):
            await self.kv.stop()
        await self.idp_client.aclose()
        if self.upstream_client is not None:
            await self.upstream_client.aclose()


# =============================================================================
# Dependencies
# =============================================================================

def get_app_state(request: Request) -> AppState:
    """
    Dependency returning the application's AppState.

    Raises:
        HTTPException: 503 if the application was not initialised
    """
    app_state = getattr(request.app.state, "app_state", None)
    if app_state is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gateway not initialized",
        )
    return app_state
