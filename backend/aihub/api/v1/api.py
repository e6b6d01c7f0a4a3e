from __future__ import annotations

from fastapi import APIRouter

from aihub.api.v1.endpoints import auth, chat, chat_stream, credits, market, media, users

api_router = APIRouter()

# SSE
api_router.include_router(chat_stream.router, tags=["chat"])

# REST
api_router.include_router(chat.router, tags=["chat"])
api_router.include_router(credits.router)
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(media.router)
api_router.include_router(market.router)
