"""
Data Models Module

This module defines the Pydantic models shared by the authentication flows:

- Token endpoint results (TokenSet)
- ID Token claims handed over by the verification capability (Claims)
- Server-side session state (Session, RefreshTokenState)
- Claim validation verdicts (ValidationResult)
- Flow outcomes mapped to client responses by the routes (FlowOutcome)
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# Stored in place of a refresh token that must not be used again.
REFRESH_TOKEN_TOMBSTONE = "-"


# ============================================================================
# Token Endpoint Models
# ============================================================================

class TokenSet(BaseModel):
    """Result of an IdP token-endpoint call."""

    model_config = ConfigDict(extra="ignore")

    id_token: Optional[str] = Field(None, description="ID Token (JWT)")
    refresh_token: Optional[str] = Field(None, description="Refresh token, if issued")
    error: Optional[str] = Field(None, description="OAuth error code")
    error_description: Optional[str] = Field(None, description="Human readable error detail")


# ============================================================================
# Claims
# ============================================================================

def _claim_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (list, tuple)):
        return ",".join(_claim_to_str(v) for v in value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class Claims(BaseModel):
    """
    Claims extracted from a signature-verified ID Token.

    Values are kept as strings; an absent claim is the empty string.
    """

    aud: str = ""
    iat: str = ""
    iss: str = ""
    sub: str = ""
    nonce: str = ""

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Claims":
        """
        Build claims from a decoded JWT payload.

        A list audience is joined with commas, so it only matches a
        configured client identifier when it has exactly one entry.
        """
        return cls(
            aud=_claim_to_str(payload.get("aud")),
            iat=_claim_to_str(payload.get("iat")),
            iss=_claim_to_str(payload.get("iss")),
            sub=_claim_to_str(payload.get("sub")),
            nonce=_claim_to_str(payload.get("nonce")),
        )


class ValidationResult(BaseModel):
    """Verdict of the ID Token claim checks."""

    valid: bool
    reasons: List[str] = Field(default_factory=list)


# ============================================================================
# Session Models
# ============================================================================

class RefreshTokenState(str, Enum):
    """What the session store holds for a session's refresh token."""

    ABSENT = "absent"
    TOMBSTONE = "tombstone"
    PRESENT = "present"

    @classmethod
    def of(cls, stored_value: Optional[str]) -> "RefreshTokenState":
        """Classify a stored refresh token value."""
        if not stored_value:
            return cls.ABSENT
        if stored_value == REFRESH_TOKEN_TOMBSTONE:
            return cls.TOMBSTONE
        return cls.PRESENT


class Session(BaseModel):
    """Token material the gateway keeps for one opaque session token."""

    session_id: str
    id_token: str
    refresh_token: Optional[str] = None


# ============================================================================
# Flow Outcomes
# ============================================================================

class FlowAction(str, Enum):
    REDIRECT = "redirect"
    ERROR = "error"
    RESUME = "resume"


class FlowOutcome(BaseModel):
    """
    Framework-neutral result of the code exchange or refresh flows.

    REDIRECT carries a Location, ERROR a status code, and RESUME the fresh
    ID Token the original request continues with.
    """

    action: FlowAction
    status_code: int
    location: Optional[str] = None
    session_id: Optional[str] = None
    id_token: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def redirect(cls, location: str, session_id: Optional[str] = None) -> "FlowOutcome":
        return cls(
            action=FlowAction.REDIRECT,
            status_code=302,
            location=location,
            session_id=session_id,
        )

    @classmethod
    def error(cls, status_code: int, message: str) -> "FlowOutcome":
        return cls(action=FlowAction.ERROR, status_code=status_code, message=message)

    @classmethod
    def resume(cls, session_id: str, id_token: str) -> "FlowOutcome":
        return cls(
            action=FlowAction.RESUME,
            status_code=200,
            session_id=session_id,
            id_token=id_token,
        )
