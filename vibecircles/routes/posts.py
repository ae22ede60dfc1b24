from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user, get_optional_user
from ..crud import users_by_ids
from ..crud import comments as crud_comments
from ..crud import notifications as crud_notifications
from ..crud import posts as crud_posts
from ..crud.groups import get_group
from ..database import get_session
from ..errors import ForbiddenError
from ..models.users import User
from ..schemas.common import PageParams, envelope, pagination
from ..schemas.posts import PostIn, PostUpdateIn, PostOut, CommentIn, CommentOut, LikeOut
from ..schemas.users import UserBrief

router = APIRouter()


async def present_posts(session: AsyncSession, posts, viewer: Optional[User]) -> list[PostOut]:
    authors = await users_by_ids(session, [p.author_id for p in posts])
    liked = await crud_posts.liked_post_ids(session, viewer.id if viewer else None, [p.id for p in posts])
    out = []
    for p in posts:
        item = PostOut.model_validate(p)
        author = authors.get(p.author_id)
        item.author = UserBrief.model_validate(author) if author else None
        item.is_liked = p.id in liked if viewer else False
        out.append(item)
    return out


async def present_comments(session: AsyncSession, comments) -> list[CommentOut]:
    authors = await users_by_ids(session, [c.author_id for c in comments])
    out = []
    for c in comments:
        item = CommentOut.model_validate(c)
        author = authors.get(c.author_id)
        item.author = UserBrief.model_validate(author) if author else None
        out.append(item)
    return out


@router.get('/')
async def list_posts(
    group_id: Optional[int] = Query(None, ge=1),
    user_id: Optional[int] = Query(None, ge=1),
    page: PageParams = Depends(pagination()),
    viewer: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    posts, total = await crud_posts.list_posts(
        session, viewer.id if viewer else None, page.limit, page.offset, group_id=group_id, author_id=user_id)
    return envelope({'posts': await present_posts(session, posts, viewer), 'pagination': page.meta(total)})


@router.get('/{post_id}')
async def get_post(
    post_id: int,
    include_deleted: bool = False,
    viewer: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    if include_deleted and (viewer is None or viewer.role != 'admin'):
        raise ForbiddenError('Only admins can view deleted posts')
    post = await crud_posts.get_post(session, post_id, viewer.id if viewer else None, include_deleted=include_deleted)
    item = (await present_posts(session, [post], viewer))[0]
    comments, _ = await crud_comments.list_comments(session, post.id, 1000, 0)
    group = None
    if post.group_id is not None:
        group = await get_group(session, post.group_id, viewer.id if viewer else None)
    data = item.model_dump(mode='json')
    data['is_active'] = post.is_active
    data['group'] = group and {'id': group['id'], 'name': group['name']}
    data['comments'] = [c.model_dump(mode='json') for c in await present_comments(session, comments)]
    return envelope(data)


@router.post('/', status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: PostIn,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    post = await crud_posts.create_post(session, current_user.id, payload)
    item = (await present_posts(session, [post], current_user))[0]
    return envelope(item, 'Post created successfully')


@router.put('/{post_id}')
async def update_post(
    post_id: int,
    payload: PostUpdateIn,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    if current_user.role == 'admin':
        post = await crud_posts.get_active_post(session, post_id)
    else:
        post = await crud_posts.get_post(session, post_id, current_user.id)
    if post.author_id != current_user.id and current_user.role != 'admin':
        raise ForbiddenError('You can only edit your own posts')
    post = await crud_posts.update_post(session, post, payload)
    item = (await present_posts(session, [post], current_user))[0]
    return envelope(item, 'Post updated successfully')


@router.delete('/{post_id}')
async def delete_post(
    post_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    if current_user.role in ('admin', 'moderator'):
        post = await crud_posts.get_active_post(session, post_id)
    else:
        post = await crud_posts.get_post(session, post_id, current_user.id)
    if post.author_id != current_user.id and current_user.role not in ('admin', 'moderator'):
        raise ForbiddenError('You can only delete your own posts')
    await crud_posts.soft_delete_post(session, post)
    return envelope(message='Post deleted successfully')


@router.post('/{post_id}/like')
async def toggle_like(
    post_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    post = await crud_posts.get_post(session, post_id, current_user.id)
    liked, count = await crud_posts.toggle_like(session, current_user.id, post.id)
    if liked:
        await crud_notifications.notify(
            session, post.author_id, current_user.id, crud_notifications.LIKE,
            f'{current_user.username} liked your post', entity_id=post.id)
    return envelope(LikeOut(liked=liked, likes_count=count), 'Post liked' if liked else 'Post unliked')


@router.post('/{post_id}/comments', status_code=status.HTTP_201_CREATED)
async def add_comment(
    post_id: int,
    payload: CommentIn,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    post = await crud_posts.get_post(session, post_id, current_user.id)
    comment = await crud_comments.add_comment(session, post, current_user.id, payload.content, payload.parent_id)
    item = (await present_comments(session, [comment]))[0]
    await crud_notifications.notify(
        session, post.author_id, current_user.id, crud_notifications.COMMENT,
        f'{current_user.username} commented on your post', entity_id=post.id)
    return envelope(item, 'Comment added successfully')


@router.get('/{post_id}/comments')
async def list_comments(
    post_id: int,
    page: PageParams = Depends(pagination()),
    viewer: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    post = await crud_posts.get_post(session, post_id, viewer.id if viewer else None)
    comments, total = await crud_comments.list_comments(session, post.id, page.limit, page.offset)
    return envelope({'comments': await present_comments(session, comments), 'pagination': page.meta(total)})
