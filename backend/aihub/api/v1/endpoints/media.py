from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aihub.api.v1.dependencies.auth import get_current_user_id
from aihub.api.v1.dependencies.services import get_media_provider
from aihub.api.v1.schemas.media import MediaJobOut, MediaSubmitRequest, MediaSubmitResponse
from aihub.core.errors import MSG_INSUFFICIENT_CREDITS, ApiError
from aihub.database import get_db, get_session_factory
from aihub.models import MediaKind
from aihub.services.media import jobs
from aihub.services.media.providers import MediaProvider

router = APIRouter(prefix="/media", tags=["media"])
log = logging.getLogger("uvicorn.error")

MSG_JOB_NOT_FOUND = "درخواست یافت نشد"
MSG_PROMPT_REQUIRED = {
    MediaKind.IMAGE: "توضیحات عکس را وارد کنید",
    MediaKind.VIDEO: "توضیحات ویدیو را وارد کنید",
    MediaKind.VOICE: "متن را وارد کنید",
    MediaKind.MUSIC: "توضیحات موسیقی را وارد کنید",
}
MSG_SUBMITTED = {
    MediaKind.IMAGE: "تصویر در حال ساخت است.",
    MediaKind.VIDEO: "ویدیو در حال ساخت است. پس از آماده شدن اطلاع داده می‌شود.",
    MediaKind.VOICE: "صدا در حال ساخت است. پس از آماده شدن اطلاع داده می‌شود.",
    MediaKind.MUSIC: "موسیقی در حال ساخت است. پس از آماده شدن اطلاع داده می‌شود.",
}


@router.get("/jobs/{job_id}", response_model=MediaJobOut, response_model_by_alias=True)
async def get_job(job_id: str, user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    job = await jobs.get_job(db, job_id, user_id)
    if job is None:
        raise ApiError(404, MSG_JOB_NOT_FOUND)
    return MediaJobOut.model_validate(job)


@router.post("/{kind}", response_model=MediaSubmitResponse, response_model_by_alias=True)
async def submit(
    kind: MediaKind,
    body: MediaSubmitRequest,
    background: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    provider: MediaProvider = Depends(get_media_provider),
):
    prompt = body.effective_prompt()
    if not prompt:
        raise ApiError(400, MSG_PROMPT_REQUIRED[kind])
    try:
        job = await jobs.submit_job(db, user_id, kind, prompt, body.options)
    except jobs.InsufficientCredits:
        raise ApiError(402, MSG_INSUFFICIENT_CREDITS)

    background.add_task(jobs.run_job, sessions, job.id, provider)
    return MediaSubmitResponse(job=MediaJobOut.model_validate(job), message=MSG_SUBMITTED[kind])


@router.get("/{kind}", response_model=List[MediaJobOut], response_model_by_alias=True)
async def list_jobs(kind: MediaKind, user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return [MediaJobOut.model_validate(j) for j in await jobs.list_jobs(db, user_id, kind)]
