# backend/aihub/services/media/providers.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol

import structlog
from openai import AsyncOpenAI, OpenAIError

from aihub.core.config import Settings, settings as default_settings
from aihub.models import MediaKind

log = structlog.get_logger(__name__)

_PLACEHOLDER_URLS = {
    MediaKind.IMAGE: "https://placeholder-image.com/{id}.png",
    MediaKind.VIDEO: "https://placeholder-video.com/{id}.mp4",
    MediaKind.VOICE: "https://placeholder-audio.com/{id}.mp3",
    MediaKind.MUSIC: "https://placeholder-audio.com/{id}.mp3",
}

IMAGE_SIZES = ("1024x1024", "1792x1024", "1024x1792")
IMAGE_QUALITIES = ("standard", "hd")


class MediaGenerationError(RuntimeError):
    pass


@dataclass(frozen=True)
class MediaRequest:
    job_id: str
    kind: MediaKind
    prompt: str
    model: str
    options: Mapping[str, Any]


class MediaProvider(Protocol):
    async def generate(self, req: MediaRequest) -> str: ...


class PlaceholderMediaProvider:
    """Waits the configured processing time, then hands out a placeholder URL."""

    def __init__(self, delays: Optional[Dict[MediaKind, float]] = None, cfg: Optional[Settings] = None) -> None:
        cfg = cfg or default_settings
        self._delays = delays if delays is not None else {
            MediaKind.IMAGE: cfg.media_delay_image_s,
            MediaKind.VIDEO: cfg.media_delay_video_s,
            MediaKind.VOICE: cfg.media_delay_voice_s,
            MediaKind.MUSIC: cfg.media_delay_music_s,
        }

    async def generate(self, req: MediaRequest) -> str:
        delay = self._delays.get(req.kind, 0.0)
        if delay > 0:
            await asyncio.sleep(delay)
        return _PLACEHOLDER_URLS[req.kind].format(id=req.job_id)


class OpenAIImageProvider:
    """DALL-E for images; every other kind is delegated to ``fallback``."""

    def __init__(self, client: AsyncOpenAI, fallback: MediaProvider) -> None:
        self._client = client
        self._fallback = fallback

    async def generate(self, req: MediaRequest) -> str:
        if req.kind is not MediaKind.IMAGE:
            return await self._fallback.generate(req)
        size = req.options.get("size") if req.options.get("size") in IMAGE_SIZES else IMAGE_SIZES[0]
        quality = req.options.get("quality") if req.options.get("quality") in IMAGE_QUALITIES else IMAGE_QUALITIES[0]
        try:
            resp = await self._client.images.generate(
                model=req.model,
                prompt=req.prompt,
                n=1,
                size=size,
                quality=quality,
            )
        except OpenAIError as exc:
            raise MediaGenerationError(str(exc)) from exc
        url = resp.data[0].url if resp.data else None
        if not url:
            raise MediaGenerationError("image response without url")
        return url


def build_media_provider(cfg: Optional[Settings] = None) -> MediaProvider:
    cfg = cfg or default_settings
    placeholder = PlaceholderMediaProvider(cfg=cfg)
    if cfg.openai_api_key:
        log.info("media.provider", image="openai", model=cfg.image_model)
        return OpenAIImageProvider(AsyncOpenAI(api_key=cfg.openai_api_key), placeholder)
    log.info("media.provider", image="placeholder")
    return placeholder
