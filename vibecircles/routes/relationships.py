import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user
from ..crud import users_by_ids
from ..crud import notifications as crud_notifications
from ..crud import relationships as crud_rel
from ..database import get_session
from ..models.users import User
from ..ratelimit import rate_limit
from ..schemas.common import PageParams, envelope, pagination
from ..schemas.relationships import RelationshipRequestIn, RelationshipRespondIn, RelationshipOut
from ..schemas.users import UserBrief

logger = logging.getLogger(__name__)

router = APIRouter()


async def present(session: AsyncSession, rels, viewer_id: int) -> list[dict]:
    users = await users_by_ids(session, [r.other(viewer_id) for r in rels])
    out = []
    for r in rels:
        item = RelationshipOut.model_validate(r).model_dump(mode='json')
        other = users.get(r.other(viewer_id))
        item['user'] = UserBrief.model_validate(other).model_dump(mode='json') if other else None
        out.append(item)
    return out


@router.post('/', status_code=status.HTTP_201_CREATED)
async def send_request(
    payload: RelationshipRequestIn,
    current_user: User = Depends(rate_limit('relationship_request', 50)),
    session: AsyncSession = Depends(get_session),
):
    rel = await crud_rel.request_relationship(session, current_user.id, payload.target)
    data = RelationshipOut.model_validate(rel)
    await crud_notifications.notify(
        session, payload.target, current_user.id, crud_notifications.FRIEND_REQUEST,
        f'{current_user.username} sent you a friend request', entity_id=data.id)
    return envelope(data, 'Friend request sent')


@router.put('/{requester_id}')
async def respond(
    requester_id: int,
    payload: RelationshipRespondIn,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    actor_name = current_user.username
    rel = await crud_rel.respond_relationship(session, current_user.id, requester_id, payload.action)
    if rel is None:
        return envelope(message='Friend request rejected')
    data = RelationshipOut.model_validate(rel)
    await crud_notifications.notify(
        session, requester_id, current_user.id, crud_notifications.FRIEND_ACCEPT,
        f'{actor_name} accepted your friend request', entity_id=data.id)
    return envelope(data, 'Friend request accepted')


@router.delete('/{other_id}')
async def remove(
    other_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await crud_rel.remove_relationship(session, current_user.id, other_id)
    return envelope(message='Friendship removed')


@router.get('/')
async def list_relationships(
    status_filter: Optional[Literal['pending', 'accepted', 'blocked']] = Query(None, alias='status'),
    page: PageParams = Depends(pagination()),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    rels, total = await crud_rel.list_relationships(session, current_user.id, status_filter, page.limit, page.offset)
    return envelope({
        'relationships': await present(session, rels, current_user.id),
        'pagination': page.meta(total),
    })


@router.get('/requests')
async def incoming_requests(
    page: PageParams = Depends(pagination()),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    rels, total = await crud_rel.incoming_requests(session, current_user.id, page.limit, page.offset)
    return envelope({'requests': await present(session, rels, current_user.id), 'pagination': page.meta(total)})


@router.post('/{user_id}/block')
async def block(
    user_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    rel = await crud_rel.block_user(session, current_user.id, user_id)
    logger.info({'msg': 'user_blocked', 'blocker_id': current_user.id, 'blocked_id': user_id})
    return envelope(RelationshipOut.model_validate(rel), 'User blocked')
