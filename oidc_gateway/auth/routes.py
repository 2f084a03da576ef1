"""
Authentication routes for the OIDC callback and ID Token validation.

- GET /_codexch: callback the IdP redirects to with an authorization code
- GET /_id_token_validation: verify and validate a token (204 / 403)
"""

import html
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import HTMLResponse, RedirectResponse

from .context import RequestContext
from ..config import Settings
from ..errors import TokenValidationError, TokenVerificationError
from ..models import FlowAction, FlowOutcome, RefreshTokenState
from ..state import AppState, get_app_state


logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(tags=["authentication"])


# =============================================================================
# Outcome rendering
# =============================================================================

def render_outcome(outcome: FlowOutcome, settings: Settings) -> Response:
    """
    Turn a REDIRECT or ERROR outcome into a client response.

    A redirect that carries a session id also issues the session cookie.
    """
    if outcome.action is FlowAction.REDIRECT:
        response = RedirectResponse(url=outcome.location or "/", status_code=outcome.status_code)
        if outcome.session_id:
            response.set_cookie(
                settings.SESSION_COOKIE_NAME,
                outcome.session_id,
                httponly=True,
                secure=settings.COOKIE_SECURE,
                samesite="lax",
                path="/",
            )
        return response

    if outcome.action is FlowAction.ERROR:
        return _render_error_page(outcome.status_code)

    raise ValueError(f"Outcome {outcome.action} is handled by the caller")


def _render_error_page(status_code: int) -> HTMLResponse:
    """
    Minimal error page; details stay in the log.
    """
    title = html.escape(f"{status_code} Authentication Error")
    html_content = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{title}</title>
</head>
<body>
    <h1>{title}</h1>
    <p>Sign-in could not be completed. Please try again.</p>
</body>
</html>
"""
    return HTMLResponse(content=html_content, status_code=status_code)


# =============================================================================
# Callback Endpoint
# =============================================================================

@auth_router.get("/_codexch")
async def code_exchange(
    request: Request,
    code: Optional[str] = Query(None, description="Authorization code from the IdP"),
    error: Optional[str] = Query(None, description="Error code if authentication failed"),
    error_description: Optional[str] = Query(None, description="Error description"),
    app_state: AppState = Depends(get_app_state),
):
    """
    Handle the IdP redirect after login.

    Returns:
        302 to the post-login target with the session cookie, or an error
        page with status 500, 502 or 504
    """
    ctx = RequestContext.from_request(request, app_state.settings)
    outcome = await app_state.exchanger.exchange(code, error, error_description, ctx)
    return render_outcome(outcome, app_state.settings)


# =============================================================================
# ID Token Validation Endpoint
# =============================================================================

@auth_router.get("/_id_token_validation", status_code=status.HTTP_204_NO_CONTENT)
async def id_token_validation(
    request: Request,
    token: str = Query("", description="ID Token to check"),
    app_state: AppState = Depends(get_app_state),
):
    """
    Verify a token's signature and expiry, then validate its claims.

    The nonce is required unless the caller's session holds a usable
    refresh token, i.e. unless this is a refresh.

    Returns:
        204 when valid, 403 otherwise
    """
    settings = app_state.settings
    ctx = RequestContext.from_request(request, settings)

    try:
        claims = await app_state.verifier.verify_and_extract(token)
    except TokenVerificationError as e:
        logger.error(f"OIDC ID Token validation error: {e.message}")
        return Response(status_code=status.HTTP_403_FORBIDDEN)

    refresh_state, _ = await app_state.store.get_refresh_token(ctx.session_id)
    try:
        app_state.validator.require_valid(
            claims,
            nonce_expected=refresh_state is not RefreshTokenState.PRESENT,
            client_nonce_cookie=ctx.nonce_cookie,
        )
    except TokenValidationError:
        return Response(status_code=status.HTTP_403_FORBIDDEN)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
