from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from aihub.api.v1.api import api_router
from aihub.core.config import settings
from aihub.core.errors import install_error_handlers
from aihub.database import create_all, engine
from aihub.services.chat.orchestrator import drain_finalizers
from aihub.services.llm.completion_gateway import CompletionGateway
from aihub.services.media.providers import build_media_provider
from aihub.services.ratelimit import RateLimiter

logging.basicConfig(level=settings.log_level.upper(), format="%(message)s")


# ---- access log filter: silence /health ----
class _HealthSilencer(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except (TypeError, ValueError):
            return True
        return "/health" not in msg


logging.getLogger("uvicorn.access").addFilter(_HealthSilencer())
# ---------------------------------------------

log = logging.getLogger("uvicorn.error")


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, version=settings.app_version)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    # health for LB / compose
    @app.get("/health")
    async def _health() -> PlainTextResponse:
        return PlainTextResponse("ok")

    # API v1
    app.include_router(api_router, prefix="/api/v1")

    @app.on_event("startup")
    async def _startup():
        # 1) schema for local / sqlite setups; production runs alembic
        if settings.auto_create_tables:
            await create_all()
            log.info("Database tables ensured.")

        # 2) shared services
        app.state.gateway = CompletionGateway()
        app.state.media_provider = build_media_provider()
        app.state.rate_limiter = RateLimiter.from_settings()
        if not settings.openrouter_api_key:
            log.warning("OPENROUTER_API_KEY not set; chat turns will fail at the provider.")
        log.info("Startup complete (rate limiter %s).", "on" if app.state.rate_limiter.enabled else "off")

    @app.on_event("shutdown")
    async def _shutdown():
        limiter = getattr(app.state, "rate_limiter", None)
        if limiter is not None:
            await limiter.close()
        # in-flight debits of cancelled turns
        await drain_finalizers()
        await engine.dispose()

    return app


app = create_app()

if __name__ == "__main__":  # pragma: no cover
    uvicorn.run("aihub.main:app", host="0.0.0.0", port=8000, reload=False)
