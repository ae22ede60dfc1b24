from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user, get_optional_user
from ..crud import comments as crud_comments
from ..crud import notifications as crud_notifications
from ..crud import posts as crud_posts
from ..database import get_session
from ..models.users import User
from ..schemas.common import PageParams, envelope, pagination
from ..schemas.posts import CommentCreateIn, CommentUpdateIn
from .posts import present_comments

router = APIRouter()


@router.get('/post/{post_id}')
async def comments_for_post(
    post_id: int,
    page: PageParams = Depends(pagination()),
    viewer: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    post = await crud_posts.get_post(session, post_id, viewer.id if viewer else None)
    comments, total = await crud_comments.list_comments(session, post.id, page.limit, page.offset)
    return envelope({'comments': await present_comments(session, comments), 'pagination': page.meta(total)})


@router.post('/', status_code=status.HTTP_201_CREATED)
async def create_comment(
    payload: CommentCreateIn,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    post = await crud_posts.get_post(session, payload.post_id, current_user.id)
    comment = await crud_comments.add_comment(session, post, current_user.id, payload.content, payload.parent_id)
    item = (await present_comments(session, [comment]))[0]
    await crud_notifications.notify(
        session, post.author_id, current_user.id, crud_notifications.COMMENT,
        f'{current_user.username} commented on your post', entity_id=post.id)
    return envelope(item, 'Comment created successfully')


@router.put('/{comment_id}')
async def update_comment(
    comment_id: int,
    payload: CommentUpdateIn,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    comment = await crud_comments.get_own_comment(session, comment_id, current_user.id)
    comment = await crud_comments.update_comment(session, comment, payload.content)
    return envelope((await present_comments(session, [comment]))[0], 'Comment updated successfully')


@router.delete('/{comment_id}')
async def delete_comment(
    comment_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    comment = await crud_comments.get_own_comment(session, comment_id, current_user.id)
    await crud_comments.soft_delete_comment(session, comment)
    return envelope(message='Comment deleted successfully')
