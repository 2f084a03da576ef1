"""
FastAPI Gateway Application Factory
===================================

Entry point of the OIDC gateway that sits between browsers and a backend
service, authenticating users against an external Identity Provider.

Architecture:
    Browser → Gateway (this service) → Backend
                 ↕
        IdP token endpoint

Routers:
    - /_codexch             : OIDC callback (authorization code exchange)
    - /_id_token_validation : ID Token verification + claim validation
    - /health               : Health check endpoint
    - /*                    : Authenticated proxy to the backend

Running the Service:
    Development:
        uvicorn oidc_gateway.main:create_app --factory --reload --port 8080

    Production:
        uvicorn oidc_gateway.main:create_app --factory --host 0.0.0.0 --port 8080 --workers 4
        (set SESSION_STORE_URL so workers share sessions)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from .auth.routes import auth_router
from .config import Settings, get_settings, validate_configuration
from .proxy.routes import proxy_router
from .state import AppState


SERVICE_NAME = "oidc-gateway"
SERVICE_VERSION = "1.0.0"


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup connects the session store; shutdown closes it together with
    the outbound HTTP clients.
    """
    app_state: AppState = app.state.app_state
    logger = logging.getLogger("oidc_gateway.main")

    await app_state.start()
    logger.info(
        "OIDC gateway started",
        extra={
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "session_store": type(app_state.kv).__name__,
        },
    )

    yield

    logger.info("Shutting down OIDC gateway")
    await app_state.stop()
    logger.info("OIDC gateway shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    app_state: Optional[AppState] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Configuration (loaded from the environment when omitted)
        app_state: Pre-built collaborators (built from settings when omitted)

    Returns:
        FastAPI: Configured application instance
    """
    if app_state is not None:
        settings = app_state.settings
    settings = settings or get_settings()

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("oidc_gateway.main")

    report = validate_configuration(settings)
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")
    for error in report["errors"]:
        logger.error(f"Configuration error: {error}")

    app = FastAPI(
        title="OIDC Gateway",
        description="OpenID Connect relying party and authenticating proxy",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )
    app.state.app_state = app_state or AppState(settings)

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Log unhandled errors (session store outages included) and return a
        standardized 500 response.
        """
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "detail": str(exc) if settings.LOG_LEVEL == "DEBUG" else None,
            },
        )

    app.include_router(auth_router)
    # Catch-all, must stay last
    app.include_router(proxy_router)

    return app


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "oidc_gateway.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
