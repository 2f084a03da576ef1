"""
Per-request state passed explicitly through the authentication flows.
"""

import secrets
from dataclasses import dataclass, field

from fastapi import Request

from ..config import Settings


def new_request_id() -> str:
    """Random request identifier, also used as a new session id."""
    return secrets.token_hex(16)


@dataclass
class RequestContext:
    """
    Attributes:
        request_id: Identifier of this request; becomes the session id when
            a login completes on it
        session_id: Opaque session token presented by the client (may be empty)
        nonce_cookie: Raw nonce seed set when the login started
        redirect_cookie: Post-login target set when the login started
        request_uri: Path and query of the request being served
    """

    request_id: str = field(default_factory=new_request_id)
    session_id: str = ""
    nonce_cookie: str = ""
    redirect_cookie: str = ""
    request_uri: str = "/"

    @classmethod
    def from_request(cls, request: Request, settings: Settings) -> "RequestContext":
        request_uri = request.url.path
        if request.url.query:
            request_uri = f"{request_uri}?{request.url.query}"

        return cls(
            session_id=request.cookies.get(settings.SESSION_COOKIE_NAME, ""),
            nonce_cookie=request.cookies.get(settings.NONCE_COOKIE_NAME, ""),
            redirect_cookie=request.cookies.get(settings.REDIRECT_COOKIE_NAME, ""),
            request_uri=request_uri,
        )
