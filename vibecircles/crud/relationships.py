"""
Friendship lifecycle and follow edges.

Friendship states for a pair: none -> pending -> accepted, with reject and
remove returning the pair to none, and blocked recorded by the blocker.
Follows are a separate asymmetric edge with no approval step.

Uniqueness is enforced by the table keys: every insert here is a single
INSERT ... ON CONFLICT DO NOTHING and the "already exists" outcome is read
from its result.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select, update, delete, func, or_, and_, case
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import insert_ignore
from ..errors import AppError, ConflictError, NotFoundError
from ..models.users import User
from ..models.relationships import Relationship, Follow, PENDING, ACCEPTED, BLOCKED

logger = logging.getLogger(__name__)


def ordered_pair(user_a: int, user_b: int) -> tuple[int, int]:
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


def _pair_clause(user_a: int, user_b: int):
    low, high = ordered_pair(user_a, user_b)
    return and_(Relationship.user_low == low, Relationship.user_high == high)


def friend_ids_select(user_id: int):
    """SELECT of the ids of `user_id`'s accepted friends."""
    other = case((Relationship.requester_id == user_id, Relationship.target_id), else_=Relationship.requester_id)
    return select(other).where(
        or_(Relationship.requester_id == user_id, Relationship.target_id == user_id),
        Relationship.status == ACCEPTED,
    )


async def _ensure_user(session: AsyncSession, user_id: int):
    res = await session.execute(select(User.id).where(User.id == user_id, User.is_active.is_(True)))
    if res.first() is None:
        raise NotFoundError('User not found')


async def get_between(session: AsyncSession, user_a: int, user_b: int):
    res = await session.execute(select(Relationship).where(_pair_clause(user_a, user_b)))
    return res.scalars().first()


def _conflict_message(existing: Relationship, requester_id: int) -> str:
    if existing.status == PENDING:
        if existing.requester_id == requester_id:
            return 'Friend request already sent'
        return 'This user has already sent you a friend request'
    if existing.status == ACCEPTED:
        return 'You are already friends'
    return 'Cannot send friend request to blocked user'


async def request_relationship(session: AsyncSession, requester_id: int, target_id: int) -> Relationship:
    if requester_id == target_id:
        raise AppError('You cannot send a friend request to yourself')
    await _ensure_user(session, target_id)

    low, high = ordered_pair(requester_id, target_id)
    new_id = await insert_ignore(session, Relationship, {
        'requester_id': requester_id,
        'target_id': target_id,
        'user_low': low,
        'user_high': high,
        'status': PENDING,
    }, ['user_low', 'user_high'])
    if new_id is None:
        existing = await get_between(session, requester_id, target_id)
        await session.rollback()
        if existing is None:
            # the conflicting row went away between the two statements
            raise ConflictError('Friend request could not be sent, please retry')
        raise ConflictError(_conflict_message(existing, requester_id))
    await session.commit()
    logger.info({'msg': 'relationship_requested', 'requester_id': requester_id, 'target_id': target_id})
    return await session.get(Relationship, new_id)


async def respond_relationship(session: AsyncSession, target_id: int, requester_id: int, action: str):
    """
    Accept or reject the pending request requester -> target.

    Returns the accepted record, or None after a reject.
    """
    match = and_(
        Relationship.requester_id == requester_id,
        Relationship.target_id == target_id,
        Relationship.status == PENDING,
    )
    if action == 'accept':
        res = await session.execute(
            update(Relationship).where(match)
            .values(status=ACCEPTED, accepted_at=datetime.now(timezone.utc))
            .returning(Relationship.id)
            .execution_options(synchronize_session=False)
        )
        rel_id = res.scalar_one_or_none()
        if rel_id is None:
            raise NotFoundError('Friend request not found')
        await session.commit()
        return await session.get(Relationship, rel_id, populate_existing=True)

    if action == 'reject':
        res = await session.execute(delete(Relationship).where(match).execution_options(synchronize_session=False))
        if res.rowcount == 0:
            raise NotFoundError('Friend request not found')
        await session.commit()
        return None

    raise AppError('Action must be either "accept" or "reject"')


async def remove_relationship(session: AsyncSession, user_id: int, other_id: int):
    res = await session.execute(
        delete(Relationship)
        .where(_pair_clause(user_id, other_id), Relationship.status == ACCEPTED)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise NotFoundError('Friendship not found')
    await session.commit()


async def block_user(session: AsyncSession, blocker_id: int, blocked_id: int) -> Relationship:
    """Clear the pair's friendship and follow edges and record the block."""
    if blocker_id == blocked_id:
        raise AppError('You cannot block yourself')
    await _ensure_user(session, blocked_id)

    await session.execute(
        delete(Relationship)
        .where(_pair_clause(blocker_id, blocked_id), Relationship.status != BLOCKED)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(Follow)
        .where(or_(
            and_(Follow.follower_id == blocker_id, Follow.followed_id == blocked_id),
            and_(Follow.follower_id == blocked_id, Follow.followed_id == blocker_id),
        ))
        .execution_options(synchronize_session=False)
    )
    low, high = ordered_pair(blocker_id, blocked_id)
    new_id = await insert_ignore(session, Relationship, {
        'requester_id': blocker_id,
        'target_id': blocked_id,
        'user_low': low,
        'user_high': high,
        'status': BLOCKED,
    }, ['user_low', 'user_high'])
    if new_id is None:
        await session.rollback()
        raise ConflictError('User is already blocked')
    await session.commit()
    return await session.get(Relationship, new_id)


async def list_relationships(session: AsyncSession, user_id: int, status: str | None, limit: int, offset: int):
    cond = [or_(Relationship.requester_id == user_id, Relationship.target_id == user_id)]
    if status:
        cond.append(Relationship.status == status)
    total = (await session.execute(select(func.count(Relationship.id)).where(*cond))).scalar_one()
    res = await session.execute(
        select(Relationship).where(*cond)
        .order_by(Relationship.created_at.desc(), Relationship.id.desc()).limit(limit).offset(offset)
    )
    return res.scalars().all(), total


async def incoming_requests(session: AsyncSession, user_id: int, limit: int, offset: int):
    cond = [Relationship.target_id == user_id, Relationship.status == PENDING]
    total = (await session.execute(select(func.count(Relationship.id)).where(*cond))).scalar_one()
    res = await session.execute(
        select(Relationship).where(*cond)
        .order_by(Relationship.created_at.desc(), Relationship.id.desc()).limit(limit).offset(offset)
    )
    return res.scalars().all(), total


# follows

async def follow_user(session: AsyncSession, follower_id: int, followed_id: int) -> Follow:
    if follower_id == followed_id:
        raise AppError('You cannot follow yourself')
    await _ensure_user(session, followed_id)
    blocked = await session.execute(select(Relationship.id).where(
        _pair_clause(follower_id, followed_id), Relationship.status == BLOCKED))
    if blocked.first() is not None:
        raise AppError('Cannot follow a blocked user')
    new_id = await insert_ignore(session, Follow, {
        'follower_id': follower_id,
        'followed_id': followed_id,
    }, ['follower_id', 'followed_id'])
    if new_id is None:
        await session.rollback()
        raise ConflictError('Already following this user')
    await session.commit()
    logger.info({'msg': 'user_followed', 'follower_id': follower_id, 'followed_id': followed_id})
    return await session.get(Follow, new_id)


async def unfollow_user(session: AsyncSession, follower_id: int, followed_id: int):
    res = await session.execute(
        delete(Follow)
        .where(Follow.follower_id == follower_id, Follow.followed_id == followed_id)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise NotFoundError('Not following this user')
    await session.commit()


async def is_following(session: AsyncSession, follower_id: int, followed_id: int) -> bool:
    res = await session.execute(
        select(Follow.id).where(Follow.follower_id == follower_id, Follow.followed_id == followed_id))
    return res.first() is not None
