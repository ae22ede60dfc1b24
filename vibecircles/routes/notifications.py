from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user
from ..crud import users_by_ids
from ..crud import notifications as crud_notifications
from ..database import get_session
from ..models.users import User
from ..schemas.common import PageParams, envelope, pagination
from ..schemas.notifications import NotificationOut
from ..schemas.users import UserBrief

router = APIRouter()


@router.get('/')
async def list_notifications(
    page: PageParams = Depends(pagination(20)),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    items, total, unread = await crud_notifications.list_notifications(
        session, current_user.id, page.limit, page.offset)
    actors = await users_by_ids(session, [n.actor_id for n in items])
    out = []
    for n in items:
        item = NotificationOut.model_validate(n)
        actor = actors.get(n.actor_id)
        item.actor = UserBrief.model_validate(actor) if actor else None
        out.append(item)
    return envelope({'notifications': out, 'unread_count': unread, 'pagination': page.meta(total)})


@router.put('/read-all')
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    updated = await crud_notifications.mark_all_read(session, current_user.id)
    return envelope({'updated': updated}, 'All notifications marked as read')


@router.put('/{notification_id}/read')
async def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await crud_notifications.mark_read(session, current_user.id, notification_id)
    return envelope(message='Notification marked as read')


@router.delete('/{notification_id}')
async def delete_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await crud_notifications.delete_notification(session, current_user.id, notification_id)
    return envelope(message='Notification deleted successfully')
