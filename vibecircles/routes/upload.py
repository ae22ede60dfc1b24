import logging

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user
from ..crud import users as crud_users
from ..database import get_session
from ..errors import ForbiddenError, MediaError
from ..media import media_store
from ..models.users import User
from ..ratelimit import rate_limit
from ..schemas.common import envelope

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post('/image')
async def upload_image(
    image: UploadFile | None = File(None),
    current_user: User = Depends(rate_limit('upload', 100)),
):
    if image is None:
        raise MediaError('No image file provided')
    data = await media_store.save_image(image)
    logger.info({'msg': 'image_uploaded', 'user_id': current_user.id, 'filename': data['filename']})
    return envelope(data, 'Image uploaded successfully')


@router.post('/avatar')
async def upload_avatar(
    avatar: UploadFile | None = File(None),
    current_user: User = Depends(rate_limit('upload', 100)),
    session: AsyncSession = Depends(get_session),
):
    if avatar is None:
        raise MediaError('No avatar file provided')
    data = await media_store.save_avatar(avatar)
    old_url = await crud_users.set_avatar(session, current_user, data['url'])
    media_store.delete_url(old_url)
    return envelope(data, 'Avatar uploaded successfully')


@router.delete('/{filename}')
async def delete_file(
    filename: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    # files in use by someone else's avatar or post stay with their owner
    owners = await crud_users.media_owner_ids(session, media_store.url_for(filename))
    if owners and current_user.id not in owners and current_user.role != 'admin':
        raise ForbiddenError('You can only delete your own files')
    media_store.delete(filename)
    if current_user.avatar_url == media_store.url_for(filename):
        await crud_users.set_avatar(session, current_user, None)
    logger.info({'msg': 'file_deleted', 'user_id': current_user.id, 'filename': filename})
    return envelope(message='File deleted successfully')
