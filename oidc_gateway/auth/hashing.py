"""
Keyed hashing for nonces and request correlation.

The login redirect sends ``hash(request_id)`` to the IdP as the nonce and
keeps the raw ``request_id`` in a cookie; on the way back the ID Token's
nonce claim must equal the hash of that cookie.
"""

import base64
import hashlib
import hmac


def hmac_sha256_b64url(value: str, secret_key: str) -> str:
    """
    HMAC-SHA256 of ``value`` keyed by ``secret_key``.

    Returns:
        Base64-URL-encoded digest without padding characters
    """
    digest = hmac.new(
        secret_key.encode("utf-8"),
        value.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


class NonceHasher:
    """Deterministic keyed hash bound to the gateway's HMAC secret."""

    def __init__(self, secret_key: str):
        if not secret_key:
            raise ValueError("NonceHasher requires a non-empty secret key")
        self._secret_key = secret_key

    def hash(self, value: str) -> str:
        return hmac_sha256_b64url(value, self._secret_key)

    __call__ = hash
