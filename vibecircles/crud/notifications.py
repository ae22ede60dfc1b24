"""
Notification writes and reads.

Notifications are written after the action they describe has committed,
in their own transaction. A failed notification write is logged and
never undoes or fails the action.
"""
import logging

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import NotFoundError
from ..models.notifications import Notification

logger = logging.getLogger(__name__)

FRIEND_REQUEST = 'friend_request'
FRIEND_ACCEPT = 'friend_accept'
FOLLOW = 'follow'
LIKE = 'like'
COMMENT = 'comment'


async def create_notification(session: AsyncSession, user_id: int, actor_id: int, kind: str, message: str,
                              entity_id: int | None = None) -> Notification:
    n = Notification(user_id=user_id, actor_id=actor_id, kind=kind, entity_id=entity_id,
                     message=message, is_read=False)
    session.add(n)
    await session.commit()
    await session.refresh(n)
    return n


async def notify(session: AsyncSession, user_id: int, actor_id: int, kind: str, message: str,
                 entity_id: int | None = None):
    """Best-effort create_notification; returns None when the write fails."""
    if user_id == actor_id:
        return None
    try:
        return await create_notification(session, user_id, actor_id, kind, message, entity_id)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.warning({'msg': 'notification_write_failed', 'user_id': user_id, 'kind': kind, 'error': str(e)})
        return None


async def list_notifications(session: AsyncSession, user_id: int, limit: int, offset: int):
    """Returns (notifications, total, unread_count), newest first."""
    total = (await session.execute(
        select(func.count(Notification.id)).where(Notification.user_id == user_id))).scalar_one()
    unread = (await session.execute(
        select(func.count(Notification.id))
        .where(Notification.user_id == user_id, Notification.is_read.is_(False)))).scalar_one()
    res = await session.execute(
        select(Notification).where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).offset(offset)
    )
    return res.scalars().all(), total, unread


async def mark_read(session: AsyncSession, user_id: int, notification_id: int):
    res = await session.execute(
        update(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(is_read=True).execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise NotFoundError('Notification not found')
    await session.commit()


async def mark_all_read(session: AsyncSession, user_id: int) -> int:
    res = await session.execute(
        update(Notification).where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True).execution_options(synchronize_session=False)
    )
    await session.commit()
    return res.rowcount


async def delete_notification(session: AsyncSession, user_id: int, notification_id: int):
    res = await session.execute(
        delete(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise NotFoundError('Notification not found')
    await session.commit()
