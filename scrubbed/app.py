"""FastAPI application for the Scrubbed backend."""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from scrubbed.core.config import get_settings
from scrubbed.repositories.sql_repository import SQLRepository
from scrubbed.routers import auth as auth_router
from scrubbed.routers import collectors as collectors_router
from scrubbed.routers import requests as requests_router
from scrubbed.services.auth_service import AuthService
from scrubbed.services.collector_service import CollectorService
from scrubbed.services.geolocation import CollectorTrackers
from scrubbed.services.identity_service import IdentityResolver
from scrubbed.services.lifecycle import RequestLifecycle


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject baseline security headers (anti clickjacking, no sniffing, referrer policy)."""

    def __init__(self, app, *, enforce_hsts: bool) -> None:
        super().__init__(app)
        self._enforce_hsts = enforce_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer-when-downgrade")
        if self._enforce_hsts:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response


def create_app(
    *,
    auth_service: AuthService | None = None,
    request_lifecycle: RequestLifecycle | None = None,
    collector_service: CollectorService | None = None,
    location_trackers: CollectorTrackers | None = None,
) -> FastAPI:
    """Factory compatible with uvicorn/gunicorn; services can be injected for tests."""
    settings = get_settings()
    app = FastAPI(title="Scrubbed API")

    allowed_cors = {settings.public_base_url}
    if settings.app_env != "prod":
        allowed_cors.update(
            {
                "http://localhost:8000",
                "http://127.0.0.1:8000",
                "http://localhost:5173",
                "http://127.0.0.1:5173",
            }
        )
    allowed_cors = {origin for origin in allowed_cors if origin}
    if allowed_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=sorted(allowed_cors),
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
            allow_headers=["*"],
        )
    app.add_middleware(SecurityHeadersMiddleware, enforce_hsts=settings.app_env == "prod")

    repository = SQLRepository()
    if auth_service is None:
        auth_service = AuthService(repository=repository, resolver=IdentityResolver(repository))
    app.state.auth_service = auth_service
    app.state.request_lifecycle = request_lifecycle or RequestLifecycle(repository)
    app.state.collector_service = collector_service or CollectorService(repository)
    app.state.location_trackers = location_trackers or CollectorTrackers(app.state.collector_service)

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    app.include_router(auth_router.router)
    app.include_router(requests_router.router)
    app.include_router(collectors_router.router)
    return app


app = create_app()
