# backend/aihub/api/v1/dependencies/services.py
"""Service wiring; tests swap these out through ``app.dependency_overrides``."""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aihub.database import get_session_factory
from aihub.services.chat.orchestrator import ChatOrchestrator
from aihub.services.llm.completion_gateway import CompletionBackend, CompletionGateway
from aihub.services.media.providers import MediaProvider, build_media_provider
from aihub.services.ratelimit import RateLimiter


def get_gateway(request: Request) -> CompletionBackend:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        gateway = CompletionGateway()
        request.app.state.gateway = gateway
    return gateway


def get_orchestrator(
    sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    gateway: CompletionBackend = Depends(get_gateway),
) -> ChatOrchestrator:
    return ChatOrchestrator(sessions, gateway)


def get_media_provider(request: Request) -> MediaProvider:
    provider = getattr(request.app.state, "media_provider", None)
    if provider is None:
        provider = build_media_provider()
        request.app.state.media_provider = provider
    return provider


def get_rate_limiter(request: Request) -> RateLimiter:
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        limiter = RateLimiter.from_settings()
        request.app.state.rate_limiter = limiter
    return limiter
