from datetime import datetime, timezone

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import AppError, NotFoundError
from ..models.comments import Comment
from ..models.posts import Post
from .posts import bump


async def add_comment(session: AsyncSession, post: Post, author_id: int, content: str, parent_id: int | None = None):
    if parent_id is not None:
        res = await session.execute(select(Comment.id).where(
            Comment.id == parent_id, Comment.post_id == post.id, Comment.is_active.is_(True)))
        if res.first() is None:
            raise AppError('Parent comment not found on this post')
    comment = Comment(post_id=post.id, author_id=author_id, parent_id=parent_id, content=content, is_active=True)
    session.add(comment)
    await session.flush()
    await session.execute(update(Post).where(Post.id == post.id)
                          .values(comments_count=bump(Post.comments_count, 1))
                          .execution_options(synchronize_session=False))
    await session.commit()
    await session.refresh(comment)
    return comment


async def list_comments(session: AsyncSession, post_id: int, limit: int, offset: int):
    cond = [Comment.post_id == post_id, Comment.is_active.is_(True)]
    total = (await session.execute(select(func.count(Comment.id)).where(*cond))).scalar_one()
    res = await session.execute(
        select(Comment).where(*cond).order_by(Comment.created_at.asc(), Comment.id.asc()).limit(limit).offset(offset)
    )
    return res.scalars().all(), total


async def get_own_comment(session: AsyncSession, comment_id: int, author_id: int):
    res = await session.execute(select(Comment).where(
        Comment.id == comment_id, Comment.author_id == author_id, Comment.is_active.is_(True)))
    comment = res.scalars().first()
    if not comment:
        raise NotFoundError('Comment not found or not authorized')
    return comment


async def update_comment(session: AsyncSession, comment: Comment, content: str):
    comment.content = content
    comment.updated_at = datetime.now(timezone.utc)
    await session.commit()
    await session.refresh(comment)
    return comment


async def soft_delete_comment(session: AsyncSession, comment: Comment):
    # guarded on is_active so a concurrent delete only decrements once
    res = await session.execute(
        update(Comment).where(Comment.id == comment.id, Comment.is_active.is_(True))
        .values(is_active=False, deleted_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise NotFoundError('Comment not found or not authorized')
    await session.execute(update(Post).where(Post.id == comment.post_id)
                          .values(comments_count=bump(Post.comments_count, -1))
                          .execution_options(synchronize_session=False))
    await session.commit()
