from datetime import datetime, timedelta, timezone

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..auth import hash_password, verify_password, generate_reset_token, hash_token
from ..errors import AppError, ConflictError
from ..models.users import User
from ..models.posts import Post
from ..models.relationships import Relationship, Follow, ACCEPTED
from .relationships import friend_ids_select


async def get_user_by_id(session: AsyncSession, user_id: int, active_only: bool = True):
    q = select(User).where(User.id == user_id)
    if active_only:
        q = q.where(User.is_active.is_(True))
    res = await session.execute(q)
    return res.scalars().first()


async def get_user_by_email(session: AsyncSession, email: str):
    res = await session.execute(select(User).where(User.email == email.lower()))
    return res.scalars().first()


async def create_user(session: AsyncSession, payload):
    if await get_user_by_email(session, payload.email):
        raise ConflictError('Email already registered')
    res = await session.execute(select(User.id).where(User.username == payload.username))
    if res.first():
        raise ConflictError('Username already taken')
    user = User(
        username=payload.username,
        email=payload.email,
        hashed_password=hash_password(payload.password),
        full_name=payload.full_name,
        role='user',
        is_active=True,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def authenticate_user(session: AsyncSession, email: str, password: str):
    user = await get_user_by_email(session, email)
    if not user:
        raise AppError('Invalid email or password', 401)
    if not user.is_active:
        raise AppError('Account is deactivated', 401)
    if not verify_password(password, user.hashed_password):
        raise AppError('Invalid email or password', 401)
    user.last_login = datetime.now(timezone.utc)
    await session.commit()
    return user


async def change_password(session: AsyncSession, user: User, current_password: str, new_password: str):
    if not verify_password(current_password, user.hashed_password):
        raise AppError('Current password is incorrect', 401)
    user.hashed_password = hash_password(new_password)
    await session.commit()


async def start_password_reset(session: AsyncSession, email: str):
    """Returns the raw reset token, or None when no active account matches."""
    user = await get_user_by_email(session, email)
    if not user or not user.is_active:
        return None
    token = generate_reset_token()
    user.reset_token_hash = hash_token(token)
    user.reset_token_expires_at = datetime.now(timezone.utc) + timedelta(minutes=config.PASSWORD_RESET_TTL_MINUTES)
    await session.commit()
    return token


async def reset_password(session: AsyncSession, token: str, new_password: str):
    res = await session.execute(select(User).where(User.reset_token_hash == hash_token(token)))
    user = res.scalars().first()
    if not user or not user.reset_token_expires_at or _aware(user.reset_token_expires_at) < datetime.now(timezone.utc):
        raise AppError('Invalid or expired reset token')
    user.hashed_password = hash_password(new_password)
    user.reset_token_hash = None
    user.reset_token_expires_at = None
    await session.commit()
    return user


def _aware(ts: datetime) -> datetime:
    # sqlite hands back naive datetimes
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


async def list_users(session: AsyncSession, q: str | None, limit: int, offset: int):
    cond = [User.is_active.is_(True)]
    if q:
        pattern = f'%{q}%'
        cond.append(or_(User.username.ilike(pattern), User.full_name.ilike(pattern)))
    total = (await session.execute(select(func.count(User.id)).where(*cond))).scalar_one()
    res = await session.execute(
        select(User).where(*cond).order_by(User.created_at.desc(), User.id.desc()).limit(limit).offset(offset)
    )
    return res.scalars().all(), total


async def update_profile(session: AsyncSession, user: User, payload):
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field == 'website' and value is not None:
            value = str(value)
        setattr(user, field, value)
    user.updated_at = datetime.now(timezone.utc)
    await session.commit()
    await session.refresh(user)
    return user


async def user_stats(session: AsyncSession, user_id: int) -> dict:
    posts = await session.execute(
        select(func.count(Post.id)).where(Post.author_id == user_id, Post.is_active.is_(True)))
    friends = await session.execute(
        select(func.count(Relationship.id)).where(
            or_(Relationship.requester_id == user_id, Relationship.target_id == user_id),
            Relationship.status == ACCEPTED))
    followers = await session.execute(select(func.count(Follow.id)).where(Follow.followed_id == user_id))
    following = await session.execute(select(func.count(Follow.id)).where(Follow.follower_id == user_id))
    return {
        'posts': posts.scalar_one(),
        'friends': friends.scalar_one(),
        'followers': followers.scalar_one(),
        'following': following.scalar_one(),
    }


async def list_friends(session: AsyncSession, user_id: int, limit: int, offset: int):
    """Accepted friends of `user_id` as (User, accepted_at) pairs."""
    cond = [
        or_(Relationship.requester_id == user_id, Relationship.target_id == user_id),
        Relationship.status == ACCEPTED,
    ]
    total = (await session.execute(select(func.count(Relationship.id)).where(*cond))).scalar_one()
    rels = (await session.execute(
        select(Relationship).where(*cond).order_by(Relationship.accepted_at.desc()).limit(limit).offset(offset)
    )).scalars().all()
    users = await session.execute(select(User).where(User.id.in_([r.other(user_id) for r in rels])))
    by_id = {u.id: u for u in users.scalars().all()}
    return [(by_id[r.other(user_id)], r.accepted_at) for r in rels if r.other(user_id) in by_id], total


async def are_friends(session: AsyncSession, user_a: int, user_b: int) -> bool:
    res = await session.execute(friend_ids_select(user_a).where(
        or_(Relationship.requester_id == user_b, Relationship.target_id == user_b)))
    return res.first() is not None


async def list_followers(session: AsyncSession, user_id: int, limit: int, offset: int):
    total = (await session.execute(select(func.count(Follow.id)).where(Follow.followed_id == user_id))).scalar_one()
    res = await session.execute(
        select(User).join(Follow, Follow.follower_id == User.id)
        .where(Follow.followed_id == user_id)
        .order_by(Follow.created_at.desc()).limit(limit).offset(offset)
    )
    return res.scalars().all(), total


async def list_following(session: AsyncSession, user_id: int, limit: int, offset: int):
    total = (await session.execute(select(func.count(Follow.id)).where(Follow.follower_id == user_id))).scalar_one()
    res = await session.execute(
        select(User).join(Follow, Follow.followed_id == User.id)
        .where(Follow.follower_id == user_id)
        .order_by(Follow.created_at.desc()).limit(limit).offset(offset)
    )
    return res.scalars().all(), total


async def set_avatar(session: AsyncSession, user: User, avatar_url: str | None):
    """Returns the previous avatar url so the caller can clean it up."""
    old_url = user.avatar_url
    user.avatar_url = avatar_url
    await session.commit()
    return old_url


async def media_owner_ids(session: AsyncSession, url: str) -> set[int]:
    """Users whose avatar or active posts reference the stored file at `url`."""
    avatars = await session.execute(select(User.id).where(User.avatar_url == url))
    posts = await session.execute(select(Post.author_id).where(Post.image_url == url, Post.is_active.is_(True)))
    return set(avatars.scalars().all()) | set(posts.scalars().all())
