"""
Configuration module for the OIDC gateway.

This module uses Pydantic Settings to load and validate environment variables
for the Identity Provider endpoints, the nonce HMAC secret, session storage,
cookie names and the upstream backend.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SUPPORTED_ID_TOKEN_ALGORITHMS = (
    "RS256", "RS384", "RS512",
    "ES256", "ES384", "ES512",
    "PS256", "PS384", "PS512",
    "HS256", "HS384", "HS512",
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Everything the relying party needs from its surroundings lives here:
    IdP endpoints and client credentials, the shared HMAC secret, cookie
    names, session lifetimes and the backend origin.
    """

    # =========================================================================
    # Identity Provider (OIDC Authorization Code flow)
    # =========================================================================

    OIDC_AUTHZ_ENDPOINT: str = Field(
        ...,
        description="IdP authorization endpoint used to start a login",
        min_length=1,
    )

    OIDC_TOKEN_ENDPOINT: str = Field(
        ...,
        description="IdP token endpoint used for code and refresh exchanges",
        min_length=1,
    )

    OIDC_CLIENT: str = Field(
        ...,
        description="Client identifier registered at the IdP (expected 'aud' claim)",
        min_length=1,
    )

    OIDC_CLIENT_SECRET: Optional[str] = Field(
        None,
        description="Client secret (optional for public clients)",
    )

    OIDC_HMAC_KEY: str = Field(
        ...,
        description="Secret used to derive nonce hashes from the nonce cookie",
        min_length=16,
    )

    OIDC_REDIRECT_URI: str = Field(
        ...,
        description="Absolute callback URI registered at the IdP (e.g. https://gw.example.com/_codexch)",
        min_length=1,
    )

    OIDC_SCOPES: str = Field(
        default="openid profile email offline_access",
        description="Space-separated scopes requested at login",
    )

    # =========================================================================
    # ID Token verification (signature + expiry)
    # =========================================================================

    OIDC_ID_TOKEN_PUBLIC_KEY: Optional[str] = Field(
        None,
        description="PEM encoded key used to verify ID Token signatures locally",
    )

    OIDC_ID_TOKEN_ALGORITHMS: str = Field(
        default="RS256",
        description="Comma-separated list of accepted ID Token signing algorithms",
    )

    OIDC_VERIFY_URL: Optional[str] = Field(
        None,
        description="Remote verification endpoint, used instead of a local public key",
    )

    IDP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Deadline for calls to the IdP and the verification endpoint",
        gt=0,
        le=120,
    )

    # =========================================================================
    # Session storage
    # =========================================================================

    SESSION_STORE_URL: Optional[str] = Field(
        None,
        description="Redis URL for the shared session store (in-memory when unset)",
    )

    SESSION_TIMEOUT_SECONDS: int = Field(
        default=3600,
        description="Lifetime of a stored ID Token in seconds",
        ge=60,
    )

    REFRESH_TIMEOUT_SECONDS: int = Field(
        default=28800,
        description="Lifetime of a stored refresh token in seconds",
        ge=60,
    )

    # =========================================================================
    # Cookies and redirects
    # =========================================================================

    SESSION_COOKIE_NAME: str = Field(default="auth_token")
    NONCE_COOKIE_NAME: str = Field(default="auth_nonce")
    REDIRECT_COOKIE_NAME: str = Field(default="auth_redir")

    POST_LOGIN_REDIRECT: str = Field(
        default="/",
        description="Where to send the user after login when no redirect cookie is present",
    )

    COOKIE_SECURE: bool = Field(
        default=True,
        description="Set the Secure flag on cookies issued by the gateway",
    )

    # =========================================================================
    # Upstream backend and server
    # =========================================================================

    UPSTREAM_URL: Optional[str] = Field(
        None,
        description="Backend origin that authenticated requests are forwarded to",
    )

    LOG_LEVEL: str = Field(default="INFO")

    HOST: str = Field(default="0.0.0.0")

    PORT: int = Field(default=8080, ge=1, le=65535)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def id_token_algorithms_list(self) -> List[str]:
        """Accepted ID Token algorithms as a clean list."""
        return [
            alg.strip()
            for alg in self.OIDC_ID_TOKEN_ALGORITHMS.split(",")
            if alg.strip()
        ]

    @property
    def scopes_list(self) -> List[str]:
        return self.OIDC_SCOPES.split()

    @property
    def upstream_url_str(self) -> Optional[str]:
        """Backend origin without trailing slash."""
        if not self.UPSTREAM_URL:
            return None
        return self.UPSTREAM_URL.rstrip("/")

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("OIDC_ID_TOKEN_ALGORITHMS")
    @classmethod
    def validate_algorithms(cls, v: str) -> str:
        """
        Validate that every configured algorithm is one PyJWT can verify.

        Raises:
            ValueError: If the list is empty or names an unknown algorithm
        """
        algorithms = [a.strip() for a in v.split(",") if a.strip()]

        if not algorithms:
            raise ValueError("OIDC_ID_TOKEN_ALGORITHMS must name at least one algorithm")

        for algorithm in algorithms:
            if algorithm not in SUPPORTED_ID_TOKEN_ALGORITHMS:
                raise ValueError(
                    f"Unsupported ID Token algorithm: {algorithm}. "
                    f"Expected one of {list(SUPPORTED_ID_TOKEN_ALGORITHMS)}"
                )

        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return level


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate cross-field configuration and return a status report.

    Called during application startup; problems are reported rather than
    raised so the caller decides whether to refuse to start.

    Returns:
        Dictionary with validation status, errors and warnings.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    has_key = bool(settings.OIDC_ID_TOKEN_PUBLIC_KEY)
    has_url = bool(settings.OIDC_VERIFY_URL)

    if has_key and has_url:
        errors.append("Set only one of OIDC_ID_TOKEN_PUBLIC_KEY and OIDC_VERIFY_URL")
    elif not has_key and not has_url:
        errors.append("One of OIDC_ID_TOKEN_PUBLIC_KEY or OIDC_VERIFY_URL is required")

    if "openid" not in settings.scopes_list:
        errors.append("OIDC_SCOPES must include 'openid'")

    if "offline_access" not in settings.scopes_list:
        warnings.append("OIDC_SCOPES lacks 'offline_access'; the IdP may not issue refresh tokens")

    if len(settings.OIDC_HMAC_KEY) < 32:
        warnings.append("OIDC_HMAC_KEY is shorter than recommended (32+ chars)")

    if not settings.OIDC_CLIENT_SECRET:
        warnings.append("OIDC_CLIENT_SECRET is not set (required for confidential clients)")

    if not settings.SESSION_STORE_URL:
        warnings.append("SESSION_STORE_URL is not set; sessions are kept in process memory")

    if not settings.upstream_url_str:
        warnings.append("UPSTREAM_URL is not set; authenticated requests cannot be forwarded")

    if not settings.COOKIE_SECURE:
        warnings.append("COOKIE_SECURE is disabled")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }
