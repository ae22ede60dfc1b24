from sqlalchemy import select, delete, func, or_, literal
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import insert_ignore
from ..errors import AppError, ConflictError, NotFoundError
from ..models.groups import Group, GroupMember
from ..models.users import User


def _members_count():
    return (select(func.count(GroupMember.id))
            .where(GroupMember.group_id == Group.id)
            .correlate(Group).scalar_subquery())


def _group_rows(viewer_id: int | None):
    """Groups joined with creator name, member count and the viewer's membership."""
    if viewer_id is not None:
        is_member = (select(func.count(GroupMember.id))
                     .where(GroupMember.group_id == Group.id, GroupMember.user_id == viewer_id)
                     .correlate(Group).scalar_subquery())
    else:
        is_member = literal(0)
    return (select(Group, User.username, _members_count().label('members_count'), is_member.label('is_member'))
            .join(User, User.id == Group.creator_id, isouter=True))


def _as_dict(row) -> dict:
    group, creator_name, members_count, is_member = row
    return {
        'id': group.id,
        'name': group.name,
        'description': group.description,
        'creator_id': group.creator_id,
        'creator_name': creator_name,
        'is_private': group.is_private,
        'created_at': group.created_at,
        'members_count': members_count or 0,
        'is_member': bool(is_member),
    }


async def list_groups(session: AsyncSession, viewer_id: int | None, search: str | None, limit: int, offset: int):
    cond = [Group.is_active.is_(True)]
    if search:
        pattern = f'%{search}%'
        cond.append(or_(Group.name.ilike(pattern), Group.description.ilike(pattern)))
    total = (await session.execute(select(func.count(Group.id)).where(*cond))).scalar_one()
    res = await session.execute(
        _group_rows(viewer_id).where(*cond).order_by(Group.created_at.desc(), Group.id.desc()).limit(limit).offset(offset)
    )
    return [_as_dict(r) for r in res.all()], total


async def get_group(session: AsyncSession, group_id: int, viewer_id: int | None = None) -> dict:
    res = await session.execute(_group_rows(viewer_id).where(Group.id == group_id, Group.is_active.is_(True)))
    row = res.first()
    if not row:
        raise NotFoundError('Group not found')
    return _as_dict(row)


async def _active_group(session: AsyncSession, group_id: int) -> Group:
    group = await session.get(Group, group_id)
    if not group or not group.is_active:
        raise NotFoundError('Group not found')
    return group


async def create_group(session: AsyncSession, creator_id: int, payload) -> int:
    group = Group(name=payload.name, description=payload.description, creator_id=creator_id,
                  is_private=payload.is_private, is_active=True)
    session.add(group)
    await session.flush()
    session.add(GroupMember(group_id=group.id, user_id=creator_id, role='admin'))
    await session.commit()
    return group.id


async def join_group(session: AsyncSession, group_id: int, user_id: int):
    await _active_group(session, group_id)
    new_id = await insert_ignore(session, GroupMember, {
        'group_id': group_id,
        'user_id': user_id,
        'role': 'member',
    }, ['group_id', 'user_id'])
    if new_id is None:
        await session.rollback()
        raise ConflictError('Already a member of this group')
    await session.commit()


async def leave_group(session: AsyncSession, group_id: int, user_id: int):
    group = await _active_group(session, group_id)
    if group.creator_id == user_id:
        raise AppError('Group creator cannot leave the group')
    res = await session.execute(
        delete(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise AppError('Not a member of this group')
    await session.commit()


async def list_members(session: AsyncSession, group_id: int, limit: int, offset: int):
    await _active_group(session, group_id)
    total = (await session.execute(
        select(func.count(GroupMember.id)).where(GroupMember.group_id == group_id))).scalar_one()
    res = await session.execute(
        select(User, GroupMember.role, GroupMember.joined_at)
        .join(GroupMember, GroupMember.user_id == User.id)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at.asc(), GroupMember.id.asc()).limit(limit).offset(offset)
    )
    members = [{
        'id': user.id,
        'username': user.username,
        'full_name': user.full_name,
        'avatar_url': user.avatar_url,
        'role': role,
        'joined_at': joined_at,
    } for user, role, joined_at in res.all()]
    return members, total
