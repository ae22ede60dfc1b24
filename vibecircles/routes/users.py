from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user, get_optional_user
from ..crud import posts as crud_posts
from ..crud import relationships as crud_rel
from ..crud import users as crud_users
from ..database import get_session
from ..errors import ForbiddenError, NotFoundError
from ..models.users import User
from ..schemas.common import PageParams, envelope, pagination
from ..schemas.users import ProfileUpdateIn, UserBrief, UserOut, UserPublic
from .posts import present_posts

router = APIRouter()


async def _require_user(session: AsyncSession, user_id: int) -> User:
    user = await crud_users.get_user_by_id(session, user_id)
    if not user:
        raise NotFoundError('User not found')
    return user


@router.get('/')
async def list_users(
    q: Optional[str] = Query(None, min_length=1, max_length=100),
    page: PageParams = Depends(pagination()),
    session: AsyncSession = Depends(get_session),
):
    users, total = await crud_users.list_users(session, q, page.limit, page.offset)
    return envelope({'users': [UserBrief.model_validate(u) for u in users], 'pagination': page.meta(total)})


@router.get('/{user_id}')
async def get_user(
    user_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    user = await _require_user(session, user_id)
    profile = UserOut.model_validate(user) if viewer and viewer.id == user.id else UserPublic.model_validate(user)
    data = {
        'user': profile,
        'stats': await crud_users.user_stats(session, user.id),
        'relationship': None,
        'is_following': False,
    }
    if viewer and viewer.id != user.id:
        rel = await crud_rel.get_between(session, viewer.id, user.id)
        if rel:
            data['relationship'] = {
                'status': rel.status,
                'requester_id': rel.requester_id,
                'target_id': rel.target_id,
            }
        data['is_following'] = await crud_rel.is_following(session, viewer.id, user.id)
    return envelope(data)


@router.put('/{user_id}/profile')
async def update_profile(
    user_id: int,
    payload: ProfileUpdateIn,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    if current_user.id != user_id and current_user.role != 'admin':
        raise ForbiddenError('Not authorized to update this profile')
    user = current_user if current_user.id == user_id else await _require_user(session, user_id)
    user = await crud_users.update_profile(session, user, payload)
    return envelope(UserOut.model_validate(user), 'Profile updated successfully')


@router.get('/{user_id}/posts')
async def user_posts(
    user_id: int,
    page: PageParams = Depends(pagination()),
    viewer: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    await _require_user(session, user_id)
    posts, total = await crud_posts.list_posts(
        session, viewer.id if viewer else None, page.limit, page.offset, author_id=user_id)
    return envelope({'posts': await present_posts(session, posts, viewer), 'pagination': page.meta(total)})


@router.get('/{user_id}/friends')
async def user_friends(
    user_id: int,
    page: PageParams = Depends(pagination(20)),
    session: AsyncSession = Depends(get_session),
):
    await _require_user(session, user_id)
    friends, total = await crud_users.list_friends(session, user_id, page.limit, page.offset)
    items = []
    for friend, since in friends:
        item = UserBrief.model_validate(friend).model_dump(mode='json')
        item['friends_since'] = since.isoformat() if since else None
        items.append(item)
    return envelope({'friends': items, 'pagination': page.meta(total)})


@router.get('/{user_id}/followers')
async def user_followers(
    user_id: int,
    page: PageParams = Depends(pagination(20)),
    session: AsyncSession = Depends(get_session),
):
    await _require_user(session, user_id)
    users, total = await crud_users.list_followers(session, user_id, page.limit, page.offset)
    return envelope({'followers': [UserBrief.model_validate(u) for u in users], 'pagination': page.meta(total)})


@router.get('/{user_id}/following')
async def user_following(
    user_id: int,
    page: PageParams = Depends(pagination(20)),
    session: AsyncSession = Depends(get_session),
):
    await _require_user(session, user_id)
    users, total = await crud_users.list_following(session, user_id, page.limit, page.offset)
    return envelope({'following': [UserBrief.model_validate(u) for u in users], 'pagination': page.meta(total)})
