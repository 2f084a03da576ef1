"""
Login initiation.

Sends the user to the IdP authorization endpoint. The request id is kept
in the nonce cookie and its keyed hash travels to the IdP as the nonce, so
the ID Token that comes back can be tied to this browser.
"""

import logging
from urllib.parse import urlencode

from fastapi.responses import RedirectResponse

from .context import RequestContext
from .hashing import NonceHasher
from ..config import Settings


logger = logging.getLogger(__name__)


def build_authorization_url(settings: Settings, nonce: str) -> str:
    params = {
        "response_type": "code",
        "scope": settings.OIDC_SCOPES,
        "client_id": settings.OIDC_CLIENT,
        "redirect_uri": settings.OIDC_REDIRECT_URI,
        "nonce": nonce,
        "state": "0",
    }
    separator = "&" if "?" in settings.OIDC_AUTHZ_ENDPOINT else "?"
    return f"{settings.OIDC_AUTHZ_ENDPOINT}{separator}{urlencode(params)}"


def start_login(settings: Settings, hasher: NonceHasher, ctx: RequestContext) -> RedirectResponse:
    """
    Redirect to the IdP, remembering where the user was going.

    Args:
        settings: Application settings
        hasher: Nonce hasher keyed with OIDC_HMAC_KEY
        ctx: Context of the request that needs a login

    Returns:
        302 RedirectResponse carrying the nonce and redirect cookies
    """
    nonce = hasher.hash(ctx.request_id)
    response = RedirectResponse(url=build_authorization_url(settings, nonce), status_code=302)

    cookie_args = {
        "httponly": True,
        "secure": settings.COOKIE_SECURE,
        "samesite": "lax",
        "path": "/",
    }
    response.set_cookie(settings.NONCE_COOKIE_NAME, ctx.request_id, **cookie_args)
    response.set_cookie(settings.REDIRECT_COOKIE_NAME, ctx.request_uri, **cookie_args)

    logger.info(
        "OIDC starting login",
        extra={"request_id": ctx.request_id, "request_uri": ctx.request_uri},
    )
    return response
