"""
ID Token claim validation.

Signature and expiry are verified before claims reach this module (see
``verifier``). What is checked here:

1. Mandatory claims (aud, iat, iss, sub) are present
2. iat is a positive integer written in canonical form
3. aud equals the configured client identifier
4. nonce equals the hash of the client's nonce cookie (fresh logins only)

All checks run even after one fails so the log shows every problem.
"""

import hmac
import logging
from typing import Optional

from .hashing import NonceHasher
from ..errors import TokenValidationError
from ..models import Claims, ValidationResult


logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ("aud", "iat", "iss", "sub")


def is_valid_iat(value: str) -> bool:
    """
    Check that iat is a positive integer that round-trips to the same text.

    "1700000000" passes; "0", "-5", "12.0", " 12", "+12" and "1_000" do not.
    """
    try:
        iat = int(value)
    except (TypeError, ValueError):
        return False
    return str(iat) == value and iat >= 1


class IdTokenValidator:
    """
    Accept/reject decision over ID Token claims.

    Stateless apart from configuration: the same claims and inputs always
    produce the same verdict and reasons.
    """

    def __init__(self, expected_audience: str, nonce_hasher: NonceHasher):
        self.expected_audience = expected_audience
        self.nonce_hasher = nonce_hasher

    def validate(
        self,
        claims: Claims,
        nonce_expected: bool,
        client_nonce_cookie: Optional[str] = None,
    ) -> ValidationResult:
        """
        Run every claim check and collect the reasons for rejection.

        Args:
            claims: Claims of a signature-verified ID Token
            nonce_expected: True for a fresh login, False during refresh
            client_nonce_cookie: Raw nonce cookie sent by the client

        Returns:
            ValidationResult, valid only when no check failed
        """
        reasons = []

        missing = [name for name in REQUIRED_CLAIMS if not getattr(claims, name)]
        if missing:
            reasons.append("missing claim(s) " + " ".join(missing))

        if not is_valid_iat(claims.iat):
            reasons.append("iat claim is not a valid number")

        if claims.aud != self.expected_audience:
            reasons.append(
                f"aud claim ({claims.aud}) does not match configured client "
                f"({self.expected_audience})"
            )

        if nonce_expected:
            client_nonce_hash = ""
            if client_nonce_cookie:
                client_nonce_hash = self.nonce_hasher.hash(client_nonce_cookie)
            if not hmac.compare_digest(
                claims.nonce.encode("utf-8"), client_nonce_hash.encode("utf-8")
            ):
                reasons.append(
                    f"nonce from token ({claims.nonce}) does not match client "
                    f"({client_nonce_hash})"
                )
        else:
            logger.info("OIDC refresh process skipping nonce validation")

        for reason in reasons:
            logger.error(
                f"OIDC ID Token validation error: {reason}",
                extra={"sub": claims.sub},
            )

        return ValidationResult(valid=not reasons, reasons=reasons)

    def require_valid(
        self,
        claims: Claims,
        nonce_expected: bool,
        client_nonce_cookie: Optional[str] = None,
    ) -> Claims:
        """
        Like validate() but raises on rejection.

        Raises:
            TokenValidationError: If any check failed
        """
        result = self.validate(claims, nonce_expected, client_nonce_cookie)
        if not result.valid:
            raise TokenValidationError(result.reasons)
        return claims
