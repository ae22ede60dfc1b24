from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user, get_optional_user
from ..crud import groups as crud_groups
from ..database import get_session
from ..models.users import User
from ..schemas.common import PageParams, envelope, pagination
from ..schemas.groups import GroupIn, GroupOut, MemberOut

router = APIRouter()


@router.get('/')
async def list_groups(
    search: Optional[str] = Query(None, min_length=1, max_length=100),
    page: PageParams = Depends(pagination()),
    viewer: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    groups, total = await crud_groups.list_groups(
        session, viewer.id if viewer else None, search, page.limit, page.offset)
    return envelope({'groups': [GroupOut(**g) for g in groups], 'pagination': page.meta(total)})


@router.get('/{group_id}')
async def get_group(
    group_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    group = await crud_groups.get_group(session, group_id, viewer.id if viewer else None)
    return envelope(GroupOut(**group))


@router.post('/', status_code=status.HTTP_201_CREATED)
async def create_group(
    payload: GroupIn,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    group_id = await crud_groups.create_group(session, current_user.id, payload)
    group = await crud_groups.get_group(session, group_id, current_user.id)
    return envelope(GroupOut(**group), 'Group created successfully')


@router.post('/{group_id}/join')
async def join_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await crud_groups.join_group(session, group_id, current_user.id)
    return envelope(message='Joined group successfully')


@router.delete('/{group_id}/join')
async def leave_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await crud_groups.leave_group(session, group_id, current_user.id)
    return envelope(message='Left group successfully')


@router.get('/{group_id}/members')
async def list_members(
    group_id: int,
    page: PageParams = Depends(pagination(50)),
    session: AsyncSession = Depends(get_session),
):
    members, total = await crud_groups.list_members(session, group_id, page.limit, page.offset)
    return envelope({'members': [MemberOut(**m) for m in members], 'pagination': page.meta(total)})
