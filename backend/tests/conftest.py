# backend/tests/conftest.py
from __future__ import annotations

import asyncio
import itertools
from typing import Dict, List, Optional, Sequence

import httpx
import pytest
import pytest_asyncio

from aihub.api.v1.dependencies.services import get_gateway, get_media_provider, get_rate_limiter
from aihub.database import Base, get_db, get_session_factory, make_engine, make_session_factory
from aihub.models import MediaKind, TransactionType, User
from aihub.services.auth.token import create_access_token
from aihub.services.credits import ledger
from aihub.services.llm.completion_gateway import ProviderError
from aihub.services.media.providers import PlaceholderMediaProvider
from aihub.services.ratelimit import RateLimiter

_phones = itertools.count(1)


class FakeGateway:
    """
    Scripted stand-in for the completion gateway.

    * ``chunks``      deltas yielded in order
    * ``fail_after``  raise ProviderError once that many deltas went out
    * ``block_after`` hang (until cancelled) once that many deltas went out
    """

    def __init__(
        self,
        chunks: Sequence[str] = ("سلام", "، ", "چطور کمک کنم؟"),
        *,
        fail_after: Optional[int] = None,
        block_after: Optional[int] = None,
    ) -> None:
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.block_after = block_after
        self.calls: List[Dict] = []
        self.opened = 0
        self.closed = 0
        self.blocked = asyncio.Event()

    async def complete(self, model_id: str, messages) -> str:
        self.calls.append({"model": model_id, "messages": [dict(m) for m in messages]})
        if self.fail_after is not None:
            raise ProviderError("provider unavailable")
        return "".join(self.chunks)

    async def stream_complete(self, model_id: str, messages):
        self.calls.append({"model": model_id, "messages": [dict(m) for m in messages]})
        self.opened += 1
        try:
            for i, chunk in enumerate(self.chunks):
                if self.fail_after is not None and i >= self.fail_after:
                    raise ProviderError("upstream stream broke")
                if self.block_after is not None and i >= self.block_after:
                    self.blocked.set()
                    await asyncio.Event().wait()
                yield chunk
            if self.fail_after is not None and self.fail_after >= len(self.chunks):
                raise ProviderError("upstream stream broke")
        finally:
            self.closed += 1


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'aihub-test.sqlite3'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def sessions(engine):
    return make_session_factory(engine)


@pytest.fixture
def make_user(sessions):
    """Creates a user whose balance is backed by a ``bonus`` ledger row."""

    async def _make(credits: int = 50, phone: Optional[str] = None) -> str:
        async with sessions() as db:
            user = User(phone=phone or f"0912{next(_phones):07d}", credits=0)
            db.add(user)
            await db.flush()
            user_id = user.id
            if credits > 0:
                assert await ledger.credit(db, user_id, credits, TransactionType.BONUS, "test bonus")
            else:
                await db.commit()
        return user_id

    return _make


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def media_provider():
    return PlaceholderMediaProvider(delays={kind: 0.0 for kind in MediaKind})


@pytest.fixture
def app(sessions, gateway, media_provider):
    from aihub.main import create_app

    application = create_app()

    async def _db():
        async with sessions() as s:
            yield s

    application.dependency_overrides[get_db] = _db
    application.dependency_overrides[get_session_factory] = lambda: sessions
    application.dependency_overrides[get_gateway] = lambda: gateway
    application.dependency_overrides[get_media_provider] = lambda: media_provider
    application.dependency_overrides[get_rate_limiter] = lambda: RateLimiter(None)
    return application


@pytest_asyncio.fixture
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def auth_headers():
    def _headers(user_id: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers
