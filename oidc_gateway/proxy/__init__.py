"""
Proxy Package
=============

Catch-all router forwarding authenticated requests to the backend.

Usage:
------
    from oidc_gateway.proxy import proxy_router
    app.include_router(proxy_router)  # include last
"""

from .routes import proxy_router

__all__ = ["proxy_router"]
