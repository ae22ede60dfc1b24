from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.users import User


async def users_by_ids(session: AsyncSession, ids) -> dict[int, User]:
    ids = set(ids)
    if not ids:
        return {}
    res = await session.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in res.scalars().all()}
