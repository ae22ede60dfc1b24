from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user
from ..crud import notifications as crud_notifications
from ..crud import relationships as crud_rel
from ..database import get_session
from ..models.users import User
from ..ratelimit import rate_limit
from ..schemas.common import envelope
from ..schemas.relationships import FollowOut

router = APIRouter()


@router.post('/{user_id}', status_code=status.HTTP_201_CREATED)
async def follow(
    user_id: int,
    current_user: User = Depends(rate_limit('follow', 100)),
    session: AsyncSession = Depends(get_session),
):
    edge = FollowOut.model_validate(await crud_rel.follow_user(session, current_user.id, user_id))
    await crud_notifications.notify(
        session, user_id, current_user.id, crud_notifications.FOLLOW,
        f'{current_user.username} started following you', entity_id=edge.id)
    return envelope(edge, 'User followed successfully')


@router.delete('/{user_id}')
async def unfollow(
    user_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await crud_rel.unfollow_user(session, current_user.id, user_id)
    return envelope(message='User unfollowed successfully')
