"""
Exceptions raised by the OIDC gateway.

The code-exchange and refresh flows catch these and map them to client
responses; nothing here knows about HTTP status codes sent to the client.
"""

from typing import Any, Dict, List, Optional


class OIDCError(Exception):
    """Base exception for OIDC gateway errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# IdP errors
# =============================================================================

class IdpTransportError(OIDCError):
    """The IdP could not be reached."""


class IdpTimeoutError(IdpTransportError):
    """The IdP did not answer before the deadline."""


class _IdpReplyError(OIDCError):

    def __init__(
        self,
        message: str,
        status_code: int,
        body: str = "",
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ):
        self.status_code = status_code
        self.body = body
        self.error = error
        self.error_description = error_description
        super().__init__(
            message,
            details={
                "status_code": status_code,
                "error": error,
                "error_description": error_description,
            },
        )


class IdpProtocolError(_IdpReplyError):
    """
    The IdP answered with an error.

    Either a non-200 status (``error`` is None when the body was not a
    structured error) or a 200 whose JSON body carries ``error``.
    """

    @property
    def is_structured(self) -> bool:
        return self.error is not None


class MalformedResponseError(_IdpReplyError):
    """The IdP answered 200 with a body that is not a usable token set."""


# =============================================================================
# Token errors
# =============================================================================

class TokenVerificationError(OIDCError):
    """Signature or expiry verification of an ID Token failed."""


class TokenValidationError(OIDCError):
    """One or more ID Token claim checks failed."""

    def __init__(self, reasons: List[str]):
        self.reasons = list(reasons)
        super().__init__(
            "ID Token validation failed: " + "; ".join(self.reasons),
            details={"reasons": self.reasons},
        )


# =============================================================================
# Session store errors
# =============================================================================

class SessionStoreError(OIDCError):
    """The session store is unavailable."""
