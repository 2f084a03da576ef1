"""
Authorization code exchange.

Runs when the IdP redirects the user back to the callback:

1. Exchange the code at the token endpoint
2. Verify the ID Token and validate its claims (nonce required)
3. Store the refresh token (if any) and the ID Token under a new session id
4. Redirect to the post-login target

Authorization codes are single-use, so every failure ends the request with
an error status instead of a retry.
"""

import logging
from typing import Optional

from .context import RequestContext
from .idp import IdpGateway
from .validator import IdTokenValidator
from .verifier import ClaimsVerifier
from ..errors import (
    IdpProtocolError,
    IdpTimeoutError,
    IdpTransportError,
    MalformedResponseError,
    TokenValidationError,
    TokenVerificationError,
)
from ..models import FlowOutcome
from ..session.store import SessionStore


logger = logging.getLogger(__name__)


def safe_redirect_target(target: Optional[str], default: str) -> str:
    """Only same-site paths are accepted as post-login targets."""
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return default


class AuthorizationCodeExchanger:
    """Turns an authorization code into a server-side session."""

    def __init__(
        self,
        idp: IdpGateway,
        verifier: ClaimsVerifier,
        validator: IdTokenValidator,
        store: SessionStore,
        post_login_redirect: str = "/",
    ):
        self.idp = idp
        self.verifier = verifier
        self.validator = validator
        self.store = store
        self.post_login_redirect = post_login_redirect

    async def exchange(
        self,
        code: Optional[str],
        error: Optional[str],
        error_description: Optional[str],
        ctx: RequestContext,
    ) -> FlowOutcome:
        """
        Complete a login.

        The post-login target is the redirect cookie when it holds a
        same-site path, otherwise the configured ``post_login_redirect``.

        Args:
            code: Authorization code from the callback query (may be empty)
            error: ``error`` query parameter sent by the IdP instead of a code
            error_description: ``error_description`` query parameter
            ctx: Request context; ``request_id`` becomes the session id

        Returns:
            302 to the post-login target on success, otherwise an ERROR
            outcome with status 500, 502 or 504
        """
        if not code:
            if error:
                return self._fail(
                    502,
                    "OIDC error receiving authorization code from IdP: "
                    f"{error_description or error}",
                )
            return self._fail(
                502,
                f"OIDC expected authorization code from IdP but received: {ctx.request_uri}",
            )

        try:
            token_set = await self.idp.exchange_code(code)
        except IdpTimeoutError:
            return self._fail(504, "OIDC timeout connecting to IdP when sending authorization code")
        except IdpTransportError as e:
            return self._fail(502, f"OIDC {e.message} when sending authorization code")
        except IdpProtocolError as e:
            if e.status_code == 200:
                return self._fail(500, f"OIDC {e.error} {e.error_description}")
            if e.is_structured:
                return self._fail(
                    502,
                    "OIDC error from IdP when sending authorization code: "
                    f"{e.error}, {e.error_description}",
                )
            return self._fail(
                502,
                "OIDC unexpected response from IdP when sending authorization code "
                f"(HTTP {e.status_code}). {e.body}",
            )
        except MalformedResponseError as e:
            return self._fail(502, f"OIDC authorization code sent but {e.message}")

        try:
            claims = await self.verifier.verify_and_extract(token_set.id_token)
        except TokenVerificationError as e:
            return self._fail(500, f"OIDC ID Token rejected: {e.message}")

        try:
            self.validator.require_valid(
                claims,
                nonce_expected=True,
                client_nonce_cookie=ctx.nonce_cookie,
            )
        except TokenValidationError:
            # reasons were logged by the validator
            return FlowOutcome.error(500, "ID Token validation failed")

        session_id = ctx.request_id

        if token_set.refresh_token:
            await self.store.save_refresh_token(session_id, token_set.refresh_token)
            logger.info("OIDC refresh token stored", extra={"session_id": session_id})
        else:
            logger.warning("OIDC no refresh token", extra={"session_id": session_id})

        logger.info(f"OIDC success, creating session {session_id}")
        await self.store.save_id_token(session_id, token_set.id_token)

        target = safe_redirect_target(ctx.redirect_cookie, self.post_login_redirect)
        return FlowOutcome.redirect(target, session_id=session_id)

    @staticmethod
    def _fail(status_code: int, message: str) -> FlowOutcome:
        logger.error(message, extra={"status_code": status_code})
        return FlowOutcome.error(status_code, message)
