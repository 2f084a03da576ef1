"""
OIDC Gateway
============

OpenID Connect relying party embedded in an authenticating proxy. The
gateway exchanges authorization codes for tokens, validates ID Tokens,
keeps server-side sessions behind an opaque cookie and refreshes expired
sessions with the stored refresh token.

Packages:
- auth: callback handling, token exchange and refresh flows, claim checks
- session: key-value session storage
- proxy: authenticated forwarding to the backend
"""

__version__ = "1.0.0"
