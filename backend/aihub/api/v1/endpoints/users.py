from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from aihub.api.v1.dependencies.auth import get_current_user_id
from aihub.api.v1.schemas.auth import ProfileUpdate, UserOut
from aihub.core.errors import MSG_LOGIN_REQUIRED, ApiError
from aihub.database import get_db
from aihub.models import User

router = APIRouter(prefix="/users", tags=["users"])


async def _load(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        # token for a user that no longer exists
        raise ApiError(401, MSG_LOGIN_REQUIRED)
    return user


@router.get("/me", response_model=UserOut, response_model_by_alias=True)
async def me(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return UserOut.model_validate(await _load(db, user_id))


@router.patch("/me", response_model=UserOut, response_model_by_alias=True)
async def update_me(
    body: ProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    user = await _load(db, user_id)
    user.name = body.name.strip()
    await db.commit()
    return UserOut.model_validate(user)
