# backend/aihub/services/media/jobs.py
"""
Media generation jobs: submit -> debit -> terminal status asynchronously.

The credit check happens before the job row exists; the debit follows right
after. A job that later fails is refunded with a ``refund`` ledger entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aihub.core.config import settings
from aihub.models import JobStatus, MediaJob, MediaKind, TransactionType
from aihub.services.credits import ledger
from aihub.services.credits.pricing import FEATURE_COSTS
from aihub.services.media.providers import MediaProvider, MediaRequest

log = structlog.get_logger(__name__)

LIST_LIMIT = 50


@dataclass(frozen=True)
class KindSpec:
    cost: int
    default_model: str
    debit_description: str
    refund_description: str


def kind_spec(kind: MediaKind) -> KindSpec:
    if kind is MediaKind.IMAGE:
        return KindSpec(FEATURE_COSTS.image_generation, settings.image_model, "ساخت تصویر با DALL-E", "بازگشت اعتبار ساخت تصویر")
    if kind is MediaKind.VIDEO:
        return KindSpec(FEATURE_COSTS.video_generation, "text-to-video-ai", "ساخت ویدیو با AI", "بازگشت اعتبار ساخت ویدیو")
    if kind is MediaKind.VOICE:
        return KindSpec(FEATURE_COSTS.voice_generation, "text-to-speech-ai", "تبدیل متن به صدا با AI", "بازگشت اعتبار تبدیل متن به صدا")
    return KindSpec(FEATURE_COSTS.music_generation, "text-to-music-ai", "ساخت موسیقی با AI", "بازگشت اعتبار ساخت موسیقی")


class InsufficientCredits(Exception):
    pass


async def submit_job(
    db: AsyncSession,
    user_id: str,
    kind: MediaKind,
    prompt: str,
    options: Optional[Dict[str, Any]] = None,
) -> MediaJob:
    spec = kind_spec(kind)
    if await ledger.get_balance(db, user_id) < spec.cost:
        raise InsufficientCredits(kind.value)

    job = MediaJob(
        user_id=user_id,
        kind=kind.value,
        prompt=prompt,
        model=spec.default_model,
        options=options or {},
        status=JobStatus.PROCESSING.value,
        credits=spec.cost,
    )
    db.add(job)
    await db.commit()

    job_id = job.id
    result = await ledger.debit(db, user_id, spec.cost, spec.debit_description)
    if not result.success:
        # same leniency as chat: the job stays, nothing is refunded later
        log.warning("media.debit_failed", user_id=user_id, job_id=job_id, kind=kind.value, reason=result.error.value)
        job = await db.get(MediaJob, job_id)
        job.credits = 0
        await db.commit()
    log.info("media.submitted", user_id=user_id, job_id=job_id, kind=kind.value)
    return job


async def run_job(
    session_factory: async_sessionmaker[AsyncSession],
    job_id: str,
    provider: MediaProvider,
) -> None:
    """Background step: call the provider and move the job to completed / failed."""
    async with session_factory() as db:
        job = await db.get(MediaJob, job_id)
        if job is None or job.status != JobStatus.PROCESSING.value:
            return
        kind = MediaKind(job.kind)
        req = MediaRequest(job_id=job.id, kind=kind, prompt=job.prompt, model=job.model, options=dict(job.options or {}))

    try:
        url = await provider.generate(req)
    except Exception as exc:
        log.error("media.failed", job_id=job_id, kind=kind.value, error=str(exc))
        await _fail(session_factory, job_id, str(exc))
        return

    async with session_factory() as db:
        job = await db.get(MediaJob, job_id)
        if job is None:
            return
        job.status = JobStatus.COMPLETED.value
        job.result_url = url
        await db.commit()
    log.info("media.completed", job_id=job_id, kind=kind.value)


async def _fail(session_factory: async_sessionmaker[AsyncSession], job_id: str, error: str) -> None:
    async with session_factory() as db:
        job = await db.get(MediaJob, job_id)
        if job is None:
            return
        job.status = JobStatus.FAILED.value
        job.error = error
        refund = job.credits
        user_id = job.user_id
        spec = kind_spec(MediaKind(job.kind))
        await db.commit()
        if refund > 0:
            await ledger.credit(db, user_id, refund, TransactionType.REFUND, spec.refund_description)


async def get_job(db: AsyncSession, job_id: str, user_id: str) -> Optional[MediaJob]:
    return await db.scalar(select(MediaJob).where(MediaJob.id == job_id, MediaJob.user_id == user_id))


async def list_jobs(db: AsyncSession, user_id: str, kind: MediaKind, limit: int = LIST_LIMIT) -> List[MediaJob]:
    result = await db.execute(
        select(MediaJob)
        .where(MediaJob.user_id == user_id, MediaJob.kind == kind.value)
        .order_by(MediaJob.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
