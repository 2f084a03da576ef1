"""
Authentication Package

Relying-party half of the OpenID Connect Authorization Code flow.

Modules:
- hashing: keyed nonce hashing
- validator: ID Token claim checks
- verifier: ID Token signature/expiry verification and claim extraction
- idp: IdP token endpoint client
- exchange: authorization code flow
- refresh: refresh token flow
- login: redirect to the IdP authorization endpoint
- routes: /_codexch and /_id_token_validation

The authentication flow:
1. A request without a usable session is redirected to the IdP
2. The IdP redirects back to /_codexch with an authorization code
3. The gateway exchanges the code, validates the ID Token, stores the
   session and sets the opaque session cookie
4. Expired sessions are refreshed transparently with the refresh token
"""
