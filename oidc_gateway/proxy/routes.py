"""
Proxy Routes - Authenticated Request Forwarding
===============================================

Every request not handled by another router lands here.

Security Model:
---------------
1. The opaque session cookie is looked up in the session store
2. The stored ID Token must still verify (signature + expiry)
3. An expired session with a usable refresh token is refreshed in place
4. Anything else is sent to the IdP to log in
5. Authenticated requests reach the backend with the ID Token as Bearer
   token; the client's own Authorization and Cookie headers are dropped
"""

import logging
from typing import Dict, Union

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ..auth.context import RequestContext
from ..auth.login import start_login
from ..auth.routes import render_outcome
from ..errors import TokenVerificationError
from ..models import FlowAction, RefreshTokenState
from ..state import AppState, get_app_state


logger = logging.getLogger(__name__)

proxy_router = APIRouter(tags=["proxy"])

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

# Never forwarded to the backend
DROPPED_REQUEST_HEADERS = {
    "authorization",
    "cookie",
    "host",
    "content-length",
    "connection",
    "keep-alive",
    "transfer-encoding",
    "upgrade",
    "proxy-authorization",
}

# Recomputed by the framework for the client response
DROPPED_RESPONSE_HEADERS = {
    "content-length",
    "content-encoding",
    "transfer-encoding",
    "connection",
    "keep-alive",
}


# ============================================================================
# Session check
# ============================================================================

async def authenticate(request: Request, app_state: AppState) -> Union[str, Response]:
    """
    Resolve the ID Token the request is authorized with.

    Returns:
        The ID Token to forward, or the Response (login redirect or replay
        redirect) the client must receive instead
    """
    settings = app_state.settings
    ctx = RequestContext.from_request(request, settings)

    session = await app_state.store.get_session(ctx.session_id)
    if session is not None:
        try:
            await app_state.verifier.verify_and_extract(session.id_token)
            return session.id_token
        except TokenVerificationError as e:
            logger.info(
                f"OIDC session token no longer valid: {e.message}",
                extra={"session_id": ctx.session_id},
            )

    refresh_state, refresh_token = await app_state.store.get_refresh_token(ctx.session_id)
    if refresh_state is RefreshTokenState.PRESENT:
        outcome = await app_state.refresher.refresh(
            ctx.session_id, refresh_token, ctx.request_uri
        )
        if outcome.action is FlowAction.RESUME:
            return outcome.id_token
        return render_outcome(outcome, settings)

    return start_login(settings, app_state.hasher, ctx)


# ============================================================================
# Header Security Functions
# ============================================================================

def build_upstream_headers(original_headers: Dict[str, str], id_token: str) -> Dict[str, str]:
    """
    Build headers for the backend request.

    Drops client credentials and hop-by-hop headers, then adds the ID Token.
    """
    headers = {
        k: v for k, v in original_headers.items()
        if k.lower() not in DROPPED_REQUEST_HEADERS
    }
    headers["Authorization"] = f"Bearer {id_token}"
    return headers


# ============================================================================
# Proxy Endpoint
# ============================================================================

@proxy_router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy(
    request: Request,
    path: str,
    app_state: AppState = Depends(get_app_state),
):
    """
    Forward an authenticated request to the backend.

    Raises:
        HTTPException: 503 without a configured backend, 504 on backend
            timeout, 502 when the backend cannot be reached
    """
    auth = await authenticate(request, app_state)
    if isinstance(auth, Response):
        return auth

    client = app_state.upstream_client
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Upstream service not configured",
        )

    try:
        upstream = await client.request(
            request.method,
            "/" + path,
            params=request.query_params,
            content=await request.body(),
            headers=build_upstream_headers(dict(request.headers), auth),
        )
    except httpx.TimeoutException:
        logger.error("Upstream request timeout", extra={"path": request.url.path})
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Upstream service timeout",
        )
    except httpx.TransportError as e:
        logger.error(f"Upstream network error: {e}", extra={"path": request.url.path})
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Cannot reach upstream service",
        )

    response = Response(content=upstream.content, status_code=upstream.status_code)
    for key, value in upstream.headers.multi_items():
        if key.lower() not in DROPPED_RESPONSE_HEADERS:
            response.headers.append(key, value)
    return response
