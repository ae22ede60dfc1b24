import logging
from datetime import datetime, timezone

from sqlalchemy import select, update, delete, func, or_, and_, case
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import insert_ignore
from ..errors import NotFoundError, ForbiddenError
from ..models.posts import Post
from ..models.likes import Like
from ..models.groups import Group, GroupMember
from .relationships import friend_ids_select

logger = logging.getLogger(__name__)


def visible_to(viewer_id: int | None):
    """Privacy filter: public for everyone, friends for accepted friends, private for the author."""
    if viewer_id is None:
        return Post.privacy == 'public'
    return or_(
        Post.privacy == 'public',
        Post.author_id == viewer_id,
        and_(Post.privacy == 'friends', Post.author_id.in_(friend_ids_select(viewer_id))),
    )


def bump(column, delta: int):
    """`n = n + delta`, clamped at zero on the way down."""
    if delta >= 0:
        return column + delta
    return case((column + delta >= 0, column + delta), else_=0)


async def get_post(session: AsyncSession, post_id: int, viewer_id: int | None = None, include_deleted: bool = False):
    q = select(Post).where(Post.id == post_id)
    if not include_deleted:
        q = q.where(Post.is_active.is_(True), visible_to(viewer_id))
    res = await session.execute(q)
    post = res.scalars().first()
    if not post:
        raise NotFoundError('Post not found')
    return post


async def get_active_post(session: AsyncSession, post_id: int):
    # no privacy filter; callers check ownership or role themselves
    res = await session.execute(select(Post).where(Post.id == post_id, Post.is_active.is_(True)))
    post = res.scalars().first()
    if not post:
        raise NotFoundError('Post not found')
    return post


async def list_posts(session: AsyncSession, viewer_id: int | None, limit: int, offset: int,
                     group_id: int | None = None, author_id: int | None = None):
    cond = [Post.is_active.is_(True), visible_to(viewer_id)]
    if group_id is not None:
        cond.append(Post.group_id == group_id)
    if author_id is not None:
        cond.append(Post.author_id == author_id)
    total = (await session.execute(select(func.count(Post.id)).where(*cond))).scalar_one()
    res = await session.execute(
        select(Post).where(*cond).order_by(Post.created_at.desc(), Post.id.desc()).limit(limit).offset(offset)
    )
    return res.scalars().all(), total


async def liked_post_ids(session: AsyncSession, user_id: int | None, post_ids) -> set[int]:
    post_ids = list(post_ids)
    if user_id is None or not post_ids:
        return set()
    res = await session.execute(select(Like.post_id).where(Like.user_id == user_id, Like.post_id.in_(post_ids)))
    return set(res.scalars().all())


async def create_post(session: AsyncSession, author_id: int, payload):
    if payload.group_id is not None:
        group = await session.get(Group, payload.group_id)
        if not group or not group.is_active:
            raise NotFoundError('Group not found')
        member = await session.execute(select(GroupMember.id).where(
            GroupMember.group_id == payload.group_id, GroupMember.user_id == author_id))
        if member.first() is None:
            raise ForbiddenError('You must be a member of the group to post')
    post = Post(
        author_id=author_id,
        group_id=payload.group_id,
        content=payload.content,
        image_url=payload.image_url,
        privacy=payload.privacy,
        likes_count=0,
        comments_count=0,
        is_active=True,
    )
    session.add(post)
    await session.commit()
    await session.refresh(post)
    logger.info({'msg': 'post_created', 'post_id': post.id, 'author_id': author_id})
    return post


async def update_post(session: AsyncSession, post: Post, payload):
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(post, field, value)
    post.updated_at = datetime.now(timezone.utc)
    await session.commit()
    await session.refresh(post)
    return post


async def soft_delete_post(session: AsyncSession, post: Post):
    post.is_active = False
    post.deleted_at = datetime.now(timezone.utc)
    await session.commit()


async def toggle_like(session: AsyncSession, user_id: int, post_id: int) -> tuple[bool, int]:
    """
    Like the post, or unlike it when already liked.

    The like row and the post counter change in the same transaction.
    Returns (liked, likes_count).
    """
    res = await session.execute(
        delete(Like).where(Like.user_id == user_id, Like.post_id == post_id)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount:
        liked = False
        await session.execute(update(Post).where(Post.id == post_id)
                              .values(likes_count=bump(Post.likes_count, -1))
                              .execution_options(synchronize_session=False))
    else:
        liked = True
        new_id = await insert_ignore(session, Like, {'user_id': user_id, 'post_id': post_id}, ['user_id', 'post_id'])
        if new_id is not None:
            await session.execute(update(Post).where(Post.id == post_id)
                                  .values(likes_count=bump(Post.likes_count, 1))
                                  .execution_options(synchronize_session=False))
    await session.commit()
    count = (await session.execute(select(Post.likes_count).where(Post.id == post_id))).scalar_one()
    return liked, count
